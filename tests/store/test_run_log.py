"""Tests for the flush run log."""

from unittest import mock

import pytest

from eventdigest.core.errors import StoreError
from eventdigest.db.migrations import init_database
from eventdigest.store.runs import RUNNING, FlushRunLog


class TestFlushRunLog:
    """Runs are recorded and listed newest first."""

    def test_start_and_finish_run(self, db_path):
        init_database(db_path)
        log = FlushRunLog(db_path)

        run_id = log.start_run("redline", "sweep")
        assert log.get_run(run_id).status == RUNNING

        log.finish_run(run_id, status="summary_sent", event_count=22, result={"deleted_count": 22})
        run = log.get_run(run_id)

        assert run.status == "summary_sent"
        assert run.trigger == "sweep"
        assert run.event_count == 22
        assert run.result == {"deleted_count": 22}
        assert run.finished_ts is not None
        assert run.last_error is None

    def test_recent_runs_filter_by_project(self, db_path):
        init_database(db_path)
        log = FlushRunLog(db_path)
        for project in ("redline", "lymphapress", "redline"):
            log.finish_run(log.start_run(project, "event"), status="skipped")

        assert len(log.get_recent_runs()) == 3
        assert {r.project_key for r in log.get_recent_runs(project_key="redline")} == {"redline"}
        assert len(log.get_recent_runs(limit=1)) == 1

    def test_missing_run_is_none(self, db_path):
        init_database(db_path)
        assert FlushRunLog(db_path).get_run("nope") is None


class TestFlushRunLogErrors:
    """Write failures surface as StoreError after retrying."""

    def test_unmigrated_database_is_store_error(self, db_path):
        log = FlushRunLog(db_path)
        with mock.patch("eventdigest.core.retry.time.sleep") as sleep:
            with pytest.raises(StoreError):
                log.start_run("redline", "event")
        assert sleep.call_count == 3

    def test_finish_run_failure_is_store_error(self, db_path):
        with mock.patch("eventdigest.core.retry.time.sleep"):
            with pytest.raises(StoreError):
                FlushRunLog(db_path).finish_run("missing-table", status="error")
