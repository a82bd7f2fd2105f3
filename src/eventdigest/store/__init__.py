"""Event storage and the flush run log."""

from eventdigest.store.events import (
    DELETE_BATCH_SIZE,
    BatchDeleteResult,
    DeleteBatchResult,
    EventStore,
    SQLiteEventStore,
)
from eventdigest.store.runs import FlushRunLog, FlushRunStatus

__all__ = [
    "DELETE_BATCH_SIZE",
    "BatchDeleteResult",
    "DeleteBatchResult",
    "EventStore",
    "FlushRunLog",
    "FlushRunStatus",
    "SQLiteEventStore",
]
