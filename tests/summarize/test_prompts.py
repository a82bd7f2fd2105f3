"""Tests for digest prompt construction."""

from conftest import NOW

from eventdigest.batching.models import Event
from eventdigest.summarize.prompts.digest import (
    CHUNK_SYSTEM_PROMPT,
    CONSOLIDATION_SYSTEM_PROMPT,
    PayloadTruncator,
    build_chunk_messages,
    build_chunk_user_prompt,
    build_consolidation_messages,
)


class TestChunkPrompt:
    def test_includes_every_event_in_order(self):
        events = [
            Event("a", "redline", NOW, "github", {"raw": {"ref": "refs/heads/main"}}),
            Event("b", "redline", NOW + 5, "trello", {"raw": {"card": "Ship it"}}),
        ]
        prompt = build_chunk_user_prompt(events, "redline")

        assert "# Project: redline" in prompt
        assert prompt.index("Event 1 (github)") < prompt.index("Event 2 (trello)")
        assert "refs/heads/main" in prompt
        assert "Ship it" in prompt

    def test_payload_without_raw_is_used_whole(self):
        events = [Event("a", "redline", NOW, "github", {"action": "opened"})]
        assert '"action": "opened"' in build_chunk_user_prompt(events, "redline")

    def test_messages_have_system_then_user(self):
        messages = build_chunk_messages([Event("a", "redline", NOW, "github", {})], "redline")
        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == CHUNK_SYSTEM_PROMPT


class TestConsolidationPrompt:
    def test_parts_are_numbered(self):
        messages = build_consolidation_messages(["first part", "second part"], "redline")
        assert messages[0]["content"] == CONSOLIDATION_SYSTEM_PROMPT
        user = messages[1]["content"]
        assert "## Part 1\nfirst part" in user
        assert "## Part 2\nsecond part" in user


class TestPayloadTruncator:
    def test_short_text_unchanged(self):
        assert PayloadTruncator(max_tokens=50).truncate("hello world") == "hello world"

    def test_long_text_truncated(self):
        truncator = PayloadTruncator(max_tokens=10)
        text = "word " * 500
        truncated = truncator.truncate(text)
        assert truncated.endswith("... [truncated]")
        assert len(truncated) < len(text)

    def test_large_payload_is_capped_in_prompt(self):
        events = [Event("a", "redline", NOW, "github", {"raw": {"diff": "x " * 20000}})]
        prompt = build_chunk_user_prompt(events, "redline", PayloadTruncator(max_tokens=100))
        assert "[truncated]" in prompt
        assert len(prompt) < 5000
