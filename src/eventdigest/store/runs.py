"""
Flush run log for eventdigest

Records one row per processed project per invocation in ``flush_runs``:
- which trigger ran it (event or sweep)
- how it ended (the flush action, skipped, delivery_failed or error)
- the outcome detail as JSON
"""

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from eventdigest.core.errors import StoreError
from eventdigest.core.paths import DB_PATH
from eventdigest.core.retry import DATABASE_RETRY_CONFIG, RetryError, retry_with_backoff
from eventdigest.db.migrations import get_connection

logger = logging.getLogger(__name__)

RUNNING = "running"
SKIPPED = "skipped"
DELIVERY_FAILED = "delivery_failed"
ERROR = "error"


@dataclass
class FlushRunStatus:
    """Status of a flush run."""

    run_id: str
    project_key: str
    trigger: str  # 'event' or 'sweep'
    status: str
    event_count: int
    last_error: str | None
    result: dict | None
    started_ts: datetime
    finished_ts: datetime | None


class FlushRunLog:
    """Reads and writes the ``flush_runs`` table."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else DB_PATH

    def start_run(self, project_key: str, trigger: str) -> str:
        """
        Create a running row.

        Returns:
            Run ID

        Raises:
            StoreError: If the row could not be written
        """
        run_id = str(uuid.uuid4())
        try:
            self._insert_run(run_id, project_key, trigger)
        except (sqlite3.Error, RetryError) as e:
            raise StoreError(f"Failed to start flush run for {project_key}: {e}") from e
        return run_id

    @retry_with_backoff(config=DATABASE_RETRY_CONFIG)
    def _insert_run(self, run_id: str, project_key: str, trigger: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO flush_runs
                (run_id, project_key, trigger, status, event_count, started_ts)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (run_id, project_key, trigger, RUNNING, datetime.now().isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def finish_run(
        self,
        run_id: str,
        status: str,
        event_count: int = 0,
        error: str | None = None,
        result: dict | None = None,
    ) -> None:
        """
        Mark a run finished.

        Raises:
            StoreError: If the row could not be updated
        """
        try:
            self._update_run(run_id, status, event_count, error, json.dumps(result) if result else None)
        except (sqlite3.Error, RetryError, TypeError, ValueError) as e:
            raise StoreError(f"Failed to finish flush run {run_id}: {e}") from e

    @retry_with_backoff(config=DATABASE_RETRY_CONFIG)
    def _update_run(
        self,
        run_id: str,
        status: str,
        event_count: int,
        error: str | None,
        result_json: str | None,
    ) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                UPDATE flush_runs
                SET status = ?, event_count = ?, last_error = ?, result_json = ?, finished_ts = ?
                WHERE run_id = ?
                """,
                (status, event_count, error, result_json, datetime.now().isoformat(), run_id),
            )
            conn.commit()
        finally:
            conn.close()

    def get_run(self, run_id: str) -> FlushRunStatus | None:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                """
                SELECT run_id, project_key, trigger, status, event_count,
                       last_error, result_json, started_ts, finished_ts
                FROM flush_runs
                WHERE run_id = ?
                """,
                (run_id,),
            ).fetchone()
        finally:
            conn.close()

        return self._to_status(row) if row else None

    def get_recent_runs(self, limit: int = 20, project_key: str | None = None) -> list[FlushRunStatus]:
        """Most recent runs first, optionally for one project."""
        query = """
            SELECT run_id, project_key, trigger, status, event_count,
                   last_error, result_json, started_ts, finished_ts
            FROM flush_runs
        """
        params: list = []
        if project_key:
            query += " WHERE project_key = ?"
            params.append(project_key)
        query += " ORDER BY started_ts DESC LIMIT ?"
        params.append(limit)

        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [self._to_status(row) for row in rows]

    @staticmethod
    def _to_status(row) -> FlushRunStatus:
        return FlushRunStatus(
            run_id=row["run_id"],
            project_key=row["project_key"],
            trigger=row["trigger"],
            status=row["status"],
            event_count=row["event_count"],
            last_error=row["last_error"],
            result=json.loads(row["result_json"]) if row["result_json"] else None,
            started_ts=datetime.fromisoformat(row["started_ts"]),
            finished_ts=datetime.fromisoformat(row["finished_ts"]) if row["finished_ts"] else None,
        )
