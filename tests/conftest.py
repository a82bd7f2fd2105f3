"""
Shared fixtures for eventdigest tests.

In-memory fakes for the store, summarizer and notifier record every call so
tests can assert on exactly which external operations happened.
"""

from pathlib import Path

import pytest

from eventdigest.batching.models import Event, SummaryArtifact
from eventdigest.batching.orchestrator import FlushOrchestrator
from eventdigest.batching.transaction import FlushTransactionManager
from eventdigest.core.config import ChannelMap
from eventdigest.core.errors import ConsolidationError, DeliveryError, SummarizerError
from eventdigest.store.events import BatchDeleteResult, DeleteBatchResult, unique_by_id

NOW = 1_700_000_000.0
CHANNEL_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


def make_events(count: int, project_key: str = "redline", start: float = NOW - 100, step: float = 1.0) -> list[Event]:
    """Events with distinct ids and increasing occurred_at."""
    return [
        Event(
            id=f"{project_key}-{i:03d}",
            project_key=project_key,
            occurred_at=start + i * step,
            source="github",
            payload={"raw": {"n": i}, "message": {"text": f"event {i}"}},
        )
        for i in range(count)
    ]


class FakeStore:
    """In-memory EventStore with controllable delete failures."""

    def __init__(self, delete_batch_size: int = 25, failing_batches: set[int] | None = None):
        self.events: dict[str, Event] = {}
        self.delete_batch_size = delete_batch_size
        self.failing_batches = failing_batches or set()
        self.delete_calls: list[list[str]] = []
        self.batch_delete_calls: list[list[Event]] = []

    def append(self, event: Event) -> Event:
        self.events[event.id] = event
        return event

    def query_all(self, project_key: str) -> list[Event]:
        matching = [e for e in self.events.values() if e.project_key == project_key]
        return sorted(matching, key=lambda e: e.occurred_at)

    def batch_delete(self, events: list[Event]) -> BatchDeleteResult:
        self.batch_delete_calls.append(list(events))
        events = unique_by_id(events)
        results = []
        for index, start in enumerate(range(0, len(events), self.delete_batch_size)):
            ids = [e.id for e in events[start : start + self.delete_batch_size]]
            self.delete_calls.append(ids)
            if index in self.failing_batches:
                results.append(DeleteBatchResult(success=False, batch_size=len(ids), event_ids=ids, error="throttled"))
                continue
            for event_id in ids:
                self.events.pop(event_id, None)
            results.append(DeleteBatchResult(success=True, batch_size=len(ids), event_ids=ids))
        return BatchDeleteResult(
            success=all(r.success for r in results),
            total_processed=len(events),
            batch_results=results,
        )

    def list_projects(self) -> list[str]:
        return sorted({e.project_key for e in self.events.values()})

    @property
    def deleted_ids(self) -> list[str]:
        return [event_id for call in self.delete_calls for event_id in call]


class FakeSummarizer:
    """Summarizer and consolidator; fails the chunk calls listed in ``fail_chunks``."""

    def __init__(self, fail_chunks: set[int] | None = None, fail_consolidation: bool = False):
        self.fail_chunks = fail_chunks or set()
        self.fail_consolidation = fail_consolidation
        self.chunk_calls: list[list[Event]] = []
        self.consolidate_calls: list[list[str]] = []

    def summarize_chunk(self, events: list[Event], project_key: str) -> SummaryArtifact:
        index = len(self.chunk_calls)
        self.chunk_calls.append(list(events))
        if index in self.fail_chunks:
            raise SummarizerError(f"chunk {index} failed")
        return SummaryArtifact(
            text=f"{project_key}: {len(events)} events",
            blocks=[{"type": "section", "text": {"type": "mrkdwn", "text": f"chunk {index}"}}],
        )

    def consolidate(self, partial_texts: list[str], project_key: str) -> SummaryArtifact:
        self.consolidate_calls.append(list(partial_texts))
        if self.fail_consolidation:
            raise ConsolidationError("consolidation failed")
        return SummaryArtifact(text=f"{project_key} digest of {len(partial_texts)} parts")


class FakeNotifier:
    """Records deliveries; raises DeliveryError when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.deliveries: list[tuple[str, object]] = []
        self.attempts = 0

    def deliver(self, channel_ref: str, message) -> None:
        self.attempts += 1
        if self.fail:
            raise DeliveryError("Slack webhook returned 500", status_code=500)
        self.deliveries.append((channel_ref, message))


@pytest.fixture
def channels() -> ChannelMap:
    return ChannelMap({"redline": CHANNEL_URL, "lymphapress": CHANNEL_URL + "2"})


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def orchestrator(store, summarizer, notifier, channels, sleeps) -> FlushOrchestrator:
    return FlushOrchestrator(
        summarizer=summarizer,
        transaction_manager=FlushTransactionManager(store, notifier, channels),
        max_chunk_size=15,
        inter_chunk_delay_ms=1000,
        sleep=sleeps.append,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "eventdigest.sqlite"
