"""
Event Store for eventdigest

Append, query and delete pending events keyed by (project_key, event id).
The pipeline depends only on the EventStore protocol; SQLiteEventStore is the
implementation backed by the migrations-managed database.

Deletes are idempotent: removing an event that is already gone is a no-op.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

from eventdigest.batching.models import Event
from eventdigest.core.errors import StoreError
from eventdigest.core.retry import DATABASE_RETRY_CONFIG, RetryError, retry_with_backoff
from eventdigest.db.migrations import get_connection, init_database

logger = logging.getLogger(__name__)

# Upper bound of keys per underlying delete call
DELETE_BATCH_SIZE = 25


@dataclass
class DeleteBatchResult:
    """Result of one underlying delete call."""

    success: bool
    batch_size: int
    event_ids: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class BatchDeleteResult:
    """Aggregate result of a batched delete."""

    success: bool
    total_processed: int
    batch_results: list[DeleteBatchResult] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return sum(r.batch_size for r in self.batch_results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(r.batch_size for r in self.batch_results if not r.success)


class EventStore(Protocol):
    """Storage operations the batching pipeline consumes."""

    def append(self, event: Event) -> Event: ...

    def query_all(self, project_key: str) -> list[Event]: ...

    def batch_delete(self, events: list[Event]) -> BatchDeleteResult: ...

    def list_projects(self) -> list[str]: ...


def unique_by_id(events: list[Event]) -> list[Event]:
    """Drop repeated event ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for event in events:
        if event.id not in seen:
            seen.add(event.id)
            unique.append(event)
    return unique


class SQLiteEventStore:
    """EventStore over the ``events`` table."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        delete_batch_size: int = DELETE_BATCH_SIZE,
        migrate: bool = True,
    ):
        """
        Args:
            db_path: Path to SQLite database
            delete_batch_size: Keys per underlying delete call
            migrate: Apply pending migrations on construction
        """
        if delete_batch_size < 1:
            raise ValueError(f"delete_batch_size must be >= 1, got {delete_batch_size}")

        self.db_path = init_database(db_path) if migrate else Path(db_path) if db_path else None
        self.delete_batch_size = delete_batch_size

    def append(self, event: Event) -> Event:
        """
        Store one event.

        Raises:
            StoreError: If the write fails
        """
        try:
            self._insert(event)
        except (sqlite3.Error, RetryError, TypeError, ValueError) as e:
            raise StoreError(f"Failed to store event {event.id} for {event.project_key}: {e}") from e

        logger.debug(f"Stored {event.source} event {event.id} for {event.project_key}")
        return event

    @retry_with_backoff(config=DATABASE_RETRY_CONFIG)
    def _insert(self, event: Event) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO events
                (event_id, project_key, occurred_at, source, payload_json, created_ts)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.project_key,
                    event.occurred_at,
                    event.source,
                    json.dumps(event.payload),
                    datetime.now().isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def query_all(self, project_key: str) -> list[Event]:
        """
        Return every pending event for a project, oldest first.

        Raises:
            StoreError: If the read fails
        """
        try:
            rows = self._select(project_key)
        except (sqlite3.Error, RetryError) as e:
            raise StoreError(f"Failed to query events for {project_key}: {e}") from e

        events = []
        for row in rows:
            try:
                payload = json.loads(row["payload_json"])
            except json.JSONDecodeError:
                logger.warning(f"Event {row['event_id']} has an unreadable payload, keeping it empty")
                payload = {}
            events.append(
                Event(
                    id=row["event_id"],
                    project_key=row["project_key"],
                    occurred_at=row["occurred_at"],
                    source=row["source"],
                    payload=payload,
                )
            )
        return events

    @retry_with_backoff(config=DATABASE_RETRY_CONFIG)
    def _select(self, project_key: str) -> list[sqlite3.Row]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                SELECT event_id, project_key, occurred_at, source, payload_json
                FROM events
                WHERE project_key = ?
                ORDER BY occurred_at ASC, rowid ASC
                """,
                (project_key,),
            )
            return cursor.fetchall()
        finally:
            conn.close()

    def batch_delete(self, events: list[Event]) -> BatchDeleteResult:
        """
        Delete events in calls of at most ``delete_batch_size`` keys.

        A failing call is recorded and the remaining calls still run.
        """
        events = unique_by_id(events)
        results: list[DeleteBatchResult] = []

        for start in range(0, len(events), self.delete_batch_size):
            batch = events[start : start + self.delete_batch_size]
            ids = [e.id for e in batch]
            try:
                self._delete_ids(ids)
                results.append(DeleteBatchResult(success=True, batch_size=len(ids), event_ids=ids))
            except (sqlite3.Error, RetryError) as e:
                logger.error(f"Error deleting batch starting at index {start}: {e}")
                results.append(
                    DeleteBatchResult(success=False, batch_size=len(ids), event_ids=ids, error=str(e))
                )

        return BatchDeleteResult(
            success=all(r.success for r in results),
            total_processed=len(events),
            batch_results=results,
        )

    @retry_with_backoff(config=DATABASE_RETRY_CONFIG)
    def _delete_ids(self, event_ids: list[str]) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.executemany("DELETE FROM events WHERE event_id = ?", [(i,) for i in event_ids])
            conn.commit()
        finally:
            conn.close()

    def list_projects(self) -> list[str]:
        """Project keys that currently have pending events."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT DISTINCT project_key FROM events ORDER BY project_key").fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list projects: {e}") from e
        finally:
            conn.close()
        return [row["project_key"] for row in rows]

    def count(self, project_key: str) -> int:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT COUNT(*) FROM events WHERE project_key = ?", (project_key,)
            ).fetchone()
        finally:
            conn.close()
        return row[0]
