"""Tests for deliver-then-delete commit."""

import logging

import pytest
from conftest import CHANNEL_URL, FakeNotifier, FakeStore, make_events

from eventdigest.batching.models import Event, FlushAction, SummaryArtifact
from eventdigest.batching.transaction import FlushTransactionManager
from eventdigest.core.errors import ConfigError, DeliveryError, StoreError

SUMMARY = SummaryArtifact(text="digest", blocks=[{"type": "section", "text": {"type": "mrkdwn", "text": "digest"}}])


class TestCommit:
    """Delivery gates deletion."""

    def test_delivers_then_deletes_exactly_the_read_set(self, store, notifier, channels):
        events = make_events(30)
        for event in events:
            store.append(event)
        late = Event("late", "redline", 9e9, "github", {})
        store.append(late)

        outcome = FlushTransactionManager(store, notifier, channels).commit("redline", SUMMARY, events)

        assert notifier.deliveries == [(CHANNEL_URL, SUMMARY)]
        assert outcome.action == FlushAction.SUMMARY_SENT
        assert outcome.deleted_count == 30
        assert outcome.undeleted_count == 0
        assert sorted(store.deleted_ids) == sorted(e.id for e in events)
        # An event appended after the read survives for the next flush
        assert [e.id for e in store.query_all("redline")] == ["late"]

    def test_deletes_are_sent_in_batches_of_twenty_five(self, store, notifier, channels):
        events = make_events(60)
        FlushTransactionManager(store, notifier, channels).commit("redline", SUMMARY, events)
        assert [len(call) for call in store.delete_calls] == [25, 25, 10]

    def test_duplicate_ids_are_deleted_once(self, store, notifier, channels):
        events = make_events(3)
        outcome = FlushTransactionManager(store, notifier, channels).commit(
            "redline", SUMMARY, events + [events[0]]
        )
        assert sorted(store.deleted_ids) == sorted(e.id for e in events)
        assert outcome.event_count == 4
        assert outcome.deleted_count == 3

    def test_delivery_failure_deletes_nothing(self, store, channels):
        notifier = FakeNotifier(fail=True)
        events = make_events(5)

        with pytest.raises(DeliveryError):
            FlushTransactionManager(store, notifier, channels).commit("redline", SUMMARY, events)

        assert store.batch_delete_calls == []

    def test_unmapped_project_raises_before_delivery(self, store, notifier, channels):
        with pytest.raises(ConfigError):
            FlushTransactionManager(store, notifier, channels).commit("nobody", SUMMARY, make_events(1))
        assert notifier.attempts == 0
        assert store.batch_delete_calls == []


class TestPartialDeletion:
    """Once delivered, the outcome is summary_sent even if cleanup is partial."""

    def test_failed_batch_still_reports_summary_sent(self, notifier, channels, caplog):
        store = FakeStore(failing_batches={1})
        events = make_events(60)
        for event in events:
            store.append(event)

        with caplog.at_level(logging.WARNING, logger="eventdigest.batching.transaction"):
            outcome = FlushTransactionManager(store, notifier, channels).commit("redline", SUMMARY, events)

        assert outcome.action == FlushAction.SUMMARY_SENT
        assert outcome.deleted_count == 35
        assert outcome.undeleted_count == 25
        assert len(store.delete_calls) == 3  # the failing batch did not stop the third
        assert len(store.query_all("redline")) == 25
        assert any("not deleted" in r.getMessage() for r in caplog.records)

    def test_store_error_during_cleanup_is_reported_not_raised(self, notifier, channels):
        class ExplodingStore(FakeStore):
            def batch_delete(self, events):
                raise StoreError("table gone")

        outcome = FlushTransactionManager(ExplodingStore(), notifier, channels).commit(
            "redline", SUMMARY, make_events(4)
        )

        assert outcome.action == FlushAction.SUMMARY_SENT
        assert outcome.undeleted_count == 4
        assert outcome.deleted_count == 0
