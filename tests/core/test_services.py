"""End-to-end wiring: real SQLite store and run log, fake summarizer and notifier."""

import pytest
from conftest import CHANNEL_URL, NOW, FakeNotifier, FakeSummarizer, make_events

from eventdigest.core.config import load_settings
from eventdigest.core.errors import ConfigError
from eventdigest.core.services import build_services


@pytest.fixture
def services(tmp_path):
    settings = load_settings(
        {
            "database": {"path": str(tmp_path / "digest.sqlite")},
            "batching": {"inter_chunk_delay_ms": 0},
            "channels": {"redline": "env:REDLINE_WEBHOOK", "lymphapress": CHANNEL_URL},
        }
    )
    return build_services(
        settings,
        environ={"REDLINE_WEBHOOK": CHANNEL_URL + "/redline"},
        summarizer=FakeSummarizer(),
        notifier=FakeNotifier(),
    )


class TestBuildServices:
    def test_wires_settings_through(self, services):
        assert services.policy.count_threshold == 20
        assert services.channels.resolve("redline") == CHANNEL_URL + "/redline"
        assert services.orchestrator.max_chunk_size == 15
        assert services.sweep_scheduler().interval_seconds == 900

    def test_unresolvable_channel_fails_at_startup(self, tmp_path):
        settings = load_settings(
            {"database": {"path": str(tmp_path / "x.sqlite")}, "channels": {"redline": "env:MISSING"}}
        )
        with pytest.raises(ConfigError):
            build_services(settings, environ={}, summarizer=FakeSummarizer(), notifier=FakeNotifier())


class TestEndToEnd:
    def test_twenty_events_flush_and_clear_store(self, services):
        results = [services.processor.ingest(event) for event in make_events(20)]

        assert [r.status for r in results[:19]] == ["skipped"] * 19
        assert results[19].flushed
        assert services.store.count("redline") == 0
        assert services.notifier.deliveries[0][0] == CHANNEL_URL + "/redline"

        runs = services.run_log.get_recent_runs(limit=50, project_key="redline")
        assert len(runs) == 20
        assert sum(1 for r in runs if r.status == "summary_sent") == 1

    def test_sweep_flushes_stale_project(self, services):
        services.store.append(make_events(1, project_key="lymphapress", start=NOW - 8000)[0])

        sweep = services.sweep_scheduler().trigger_now()

        statuses = {r.project_key: r.status for r in sweep.results}
        assert statuses == {"lymphapress": "summary_sent", "redline": "no_action"}
        assert services.store.count("lymphapress") == 0
