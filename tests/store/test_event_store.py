"""Tests for the SQLite event store."""

import sqlite3
from pathlib import Path
from unittest import mock

import pytest
from conftest import NOW, make_events

from eventdigest.batching.models import Event
from eventdigest.core.errors import StoreError
from eventdigest.store import events as events_module
from eventdigest.store.events import SQLiteEventStore


@pytest.fixture
def sqlite_store(db_path: Path) -> SQLiteEventStore:
    return SQLiteEventStore(db_path)


class TestAppendAndQuery:
    """Events round-trip through the events table."""

    def test_query_returns_project_events_oldest_first(self, sqlite_store):
        events = make_events(5)
        for event in reversed(events):
            sqlite_store.append(event)
        sqlite_store.append(make_events(1, project_key="lymphapress")[0])

        stored = sqlite_store.query_all("redline")

        assert [e.id for e in stored] == [e.id for e in events]
        assert stored[0].payload == {"raw": {"n": 0}, "message": {"text": "event 0"}}
        assert stored[0].source == "github"
        assert stored[0].occurred_at == events[0].occurred_at

    def test_unknown_project_is_empty(self, sqlite_store):
        assert sqlite_store.query_all("nobody") == []

    def test_duplicate_id_is_store_error(self, sqlite_store):
        event = make_events(1)[0]
        sqlite_store.append(event)
        with pytest.raises(StoreError):
            sqlite_store.append(event)

    def test_unserializable_payload_is_store_error(self, sqlite_store):
        event = Event("bad", "redline", NOW, "github", {"when": object()})
        with pytest.raises(StoreError):
            sqlite_store.append(event)

    def test_list_projects(self, sqlite_store):
        for event in make_events(2) + make_events(1, project_key="lymphapress"):
            sqlite_store.append(event)
        assert sqlite_store.list_projects() == ["lymphapress", "redline"]
        assert sqlite_store.count("redline") == 2

    def test_query_failure_is_store_error(self, sqlite_store):
        with mock.patch.object(
            sqlite_store, "_select", side_effect=sqlite3.DatabaseError("disk image is malformed")
        ):
            with pytest.raises(StoreError):
                sqlite_store.query_all("redline")


class TestBatchDelete:
    """Deletes run in bounded batches and are idempotent."""

    def test_deletes_in_batches_of_twenty_five(self, sqlite_store):
        events = make_events(60)
        for event in events:
            sqlite_store.append(event)

        result = sqlite_store.batch_delete(events)

        assert result.success is True
        assert result.total_processed == 60
        assert [r.batch_size for r in result.batch_results] == [25, 25, 10]
        assert result.deleted_count == 60
        assert sqlite_store.query_all("redline") == []

    def test_only_given_events_are_deleted(self, sqlite_store):
        events = make_events(4)
        for event in events:
            sqlite_store.append(event)

        sqlite_store.batch_delete(events[:2])

        assert [e.id for e in sqlite_store.query_all("redline")] == [e.id for e in events[2:]]

    def test_deleting_missing_events_is_a_no_op(self, sqlite_store):
        events = make_events(3)
        result = sqlite_store.batch_delete(events)
        assert result.success is True
        assert sqlite_store.batch_delete(events).success is True

    def test_duplicates_collapsed(self, sqlite_store):
        events = make_events(2)
        for event in events:
            sqlite_store.append(event)
        result = sqlite_store.batch_delete(events + events)
        assert result.total_processed == 2

    def test_failed_batch_does_not_abort_siblings(self, sqlite_store):
        events = make_events(60)
        for event in events:
            sqlite_store.append(event)

        real_delete = sqlite_store._delete_ids
        calls = []

        def flaky_delete(ids):
            calls.append(ids)
            if len(calls) == 2:
                raise sqlite3.OperationalError("database is locked")
            real_delete(ids)

        with mock.patch.object(sqlite_store, "_delete_ids", side_effect=flaky_delete):
            result = sqlite_store.batch_delete(events)

        assert result.success is False
        assert [r.success for r in result.batch_results] == [True, False, True]
        assert result.failed_count == 25
        assert result.batch_results[1].error == "database is locked"
        assert len(sqlite_store.query_all("redline")) == 25

    def test_locked_database_during_delete_is_retried(self, sqlite_store):
        events = make_events(3)
        for event in events:
            sqlite_store.append(event)

        real_connect = events_module.get_connection
        attempts = []

        def locked_once(db_path):
            attempts.append(db_path)
            if len(attempts) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_connect(db_path)

        with mock.patch.object(events_module, "get_connection", side_effect=locked_once), mock.patch(
            "eventdigest.core.retry.time.sleep"
        ):
            result = sqlite_store.batch_delete(events)

        assert result.success is True
        assert result.deleted_count == 3
        assert len(attempts) == 2
        assert sqlite_store.query_all("redline") == []

    def test_empty_delete(self, sqlite_store):
        result = sqlite_store.batch_delete([])
        assert result.success is True
        assert result.batch_results == []

    def test_invalid_batch_size_rejected(self, db_path):
        with pytest.raises(ValueError):
            SQLiteEventStore(db_path, delete_batch_size=0)
