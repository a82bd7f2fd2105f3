"""
Digest Prompts for eventdigest

Two prompts, both answered with a Slack message as JSON:
- chunk summarization: up to one chunk of raw webhook events
- consolidation: the partial summaries of one flush, merged into one report
"""

import json
import logging
from datetime import datetime, timezone

import tiktoken

from eventdigest.batching.models import Event

logger = logging.getLogger(__name__)

# Model for digest summarization
DIGEST_MODEL = "gpt-4o"

DEFAULT_ENCODING = "cl100k_base"
DEFAULT_MAX_PAYLOAD_TOKENS = 800

SLACK_MESSAGE_DESCRIPTION = """
{
  "text": "Plain text fallback for clients that don't support blocks",
  "blocks": [
    {"type": "header", "text": {"type": "plain_text", "text": "..."}},
    {"type": "section", "text": {"type": "mrkdwn", "text": "..."}},
    {"type": "divider"},
    {"type": "context", "elements": [{"type": "mrkdwn", "text": "..."}]}
  ]
}
"""

CHUNK_SYSTEM_PROMPT = f"""You summarize webhook activity (GitHub, Trello and other tools) for a software team's Slack channel.

## Output Requirements

You MUST respond with valid JSON conforming to this shape:
{SLACK_MESSAGE_DESCRIPTION}

## Guidelines

1. Use Slack Block Kit to create a clear, visually organized message.
2. Group related events and highlight patterns or trends.
3. Prioritize what engineers need to know: merges, failures, reviews, blocked cards.
4. Keep it concise and actionable. Mention who did what when it is in the data.
5. Use a few meaningful emojis and keep a positive tone.

## Constraints

- Do NOT paste raw payloads or long URLs
- Only use block types: header, section, divider, context
- Keep every section text under 3000 characters
"""

CONSOLIDATION_SYSTEM_PROMPT = f"""You merge several partial activity summaries for the same project into one Slack report.

The partial summaries cover consecutive slices of the same time period, oldest first.

## Output Requirements

You MUST respond with valid JSON conforming to this shape:
{SLACK_MESSAGE_DESCRIPTION}

## Guidelines

1. Start with a header naming the project and that this is a batch summary.
2. Merge overlapping points instead of repeating them per partial summary.
3. Keep the chronological story of the period.
4. End with a brief conclusion or recommendation if one is warranted.

## Constraints

- Do not invent events that no partial summary mentions
- Only use block types: header, section, divider, context
"""


class PayloadTruncator:
    """Caps each event payload at a token budget before it enters a prompt."""

    def __init__(self, max_tokens: int = DEFAULT_MAX_PAYLOAD_TOKENS):
        self.max_tokens = max_tokens
        try:
            self._encoding = tiktoken.get_encoding(DEFAULT_ENCODING)
        except Exception:
            logger.warning("Failed to load tiktoken encoding")
            self._encoding = None

    def count_tokens(self, text: str) -> int:
        if self._encoding:
            return len(self._encoding.encode(text))
        return len(text) // 4

    def truncate(self, text: str) -> str:
        """Truncate text to fit within the token budget."""
        if self._encoding:
            tokens = self._encoding.encode(text)
            if len(tokens) <= self.max_tokens:
                return text
            return self._encoding.decode(tokens[: self.max_tokens]) + "... [truncated]"

        # Fallback: estimate 4 chars per token
        max_chars = self.max_tokens * 4
        if len(text) <= max_chars:
            return text
        return text[:max_chars] + "... [truncated]"


def _event_body(event: Event) -> object:
    """The part of a payload worth showing the model: the raw webhook body if stored."""
    return event.payload.get("raw", event.payload)


def build_chunk_user_prompt(
    events: list[Event],
    project_key: str,
    truncator: PayloadTruncator | None = None,
) -> str:
    """
    Build the user prompt for one chunk.

    Args:
        events: Events of the chunk, oldest first
        project_key: Project the events belong to
        truncator: Per-event payload truncation (defaults to the standard budget)

    Returns:
        Formatted user prompt string
    """
    truncator = truncator or PayloadTruncator()
    lines = [f"# Project: {project_key}", f"# Events: {len(events)}", ""]

    for index, event in enumerate(events, start=1):
        timestamp = datetime.fromtimestamp(event.occurred_at, tz=timezone.utc).isoformat()
        body = json.dumps(_event_body(event), indent=2, default=str)
        lines.append(f"## Event {index} ({event.source}) at {timestamp}")
        lines.append("```json")
        lines.append(truncator.truncate(body))
        lines.append("```")
        lines.append("")

    lines.append("---")
    lines.append(
        f"Summarize these {len(events)} events as a Slack message following the JSON shape in the system prompt."
    )
    return "\n".join(lines)


def build_chunk_messages(
    events: list[Event],
    project_key: str,
    truncator: PayloadTruncator | None = None,
) -> list[dict]:
    """Chat messages for summarizing one chunk."""
    return [
        {"role": "system", "content": CHUNK_SYSTEM_PROMPT},
        {"role": "user", "content": build_chunk_user_prompt(events, project_key, truncator)},
    ]


def build_consolidation_user_prompt(partial_texts: list[str], project_key: str) -> str:
    lines = [f"# Project: {project_key}", f"# Partial summaries: {len(partial_texts)}", ""]
    for index, text in enumerate(partial_texts, start=1):
        lines.append(f"## Part {index}")
        lines.append(text)
        lines.append("")
    lines.append("---")
    lines.append("Merge these into one Slack message following the JSON shape in the system prompt.")
    return "\n".join(lines)


def build_consolidation_messages(partial_texts: list[str], project_key: str) -> list[dict]:
    """Chat messages for consolidating partial summaries."""
    return [
        {"role": "system", "content": CONSOLIDATION_SYSTEM_PROMPT},
        {"role": "user", "content": build_consolidation_user_prompt(partial_texts, project_key)},
    ]


if __name__ == "__main__":
    import fire

    def show_chunk_prompt():
        """Show the chunk system prompt."""
        print(CHUNK_SYSTEM_PROMPT)

    def show_consolidation_prompt():
        """Show the consolidation system prompt."""
        print(CONSOLIDATION_SYSTEM_PROMPT)

    def demo_user_prompt(project_key: str = "demo"):
        """Show a demo chunk prompt."""
        events = [
            Event.new(project_key, "github", {"raw": {"action": "opened", "number": 12}}),
            Event.new(project_key, "trello", {"raw": {"action": {"type": "updateCard"}}}),
        ]
        print(build_chunk_user_prompt(events, project_key))

    fire.Fire(
        {
            "chunk": show_chunk_prompt,
            "consolidation": show_consolidation_prompt,
            "demo": demo_user_prompt,
        }
    )
