"""
Database Migration Runner for eventdigest

Handles versioned schema migrations for the SQLite database.
Migrations are numbered SQL files in the sql/ directory, each of which
records itself in schema_version.
"""

import logging
import re
import sqlite3
from pathlib import Path

from eventdigest.core.paths import DB_PATH

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "sql"

EXPECTED_TABLES = ("schema_version", "events", "flush_runs")


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Get a connection to the SQLite database.

    Args:
        db_path: Path to the database file. Defaults to DATA_ROOT/db/eventdigest.sqlite

    Returns:
        sqlite3.Connection with Row factory and a busy timeout
    """
    db_path = Path(db_path) if db_path else DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), timeout=5.0)
    conn.row_factory = sqlite3.Row
    return conn


def get_current_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, or 0 on a fresh database."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0
    except sqlite3.OperationalError:
        return 0


class MigrationRunner:
    """Applies pending NNN_name.sql migrations in version order."""

    def __init__(self, db_path: Path | str | None = None):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.migrations_dir = MIGRATIONS_DIR

    def get_pending_migrations(self) -> list[tuple[int, Path]]:
        """
        Get migrations that haven't been applied yet.

        Returns:
            List of (version, path) tuples, lowest version first
        """
        if not self.migrations_dir.exists():
            return []

        conn = get_connection(self.db_path)
        try:
            current_version = get_current_version(conn)
        finally:
            conn.close()

        pending = []
        for migration_file in sorted(self.migrations_dir.glob("*.sql")):
            match = re.match(r"^(\d+)_", migration_file.name)
            if match and int(match.group(1)) > current_version:
                pending.append((int(match.group(1)), migration_file))

        return sorted(pending, key=lambda x: x[0])

    def run_migrations(self) -> int:
        """
        Run all pending migrations.

        Returns:
            Number of migrations applied
        """
        pending = self.get_pending_migrations()
        if not pending:
            logger.debug("No pending migrations")
            return 0

        logger.info(f"Found {len(pending)} pending migration(s)")

        conn = get_connection(self.db_path)
        try:
            for _version, migration_path in pending:
                logger.info(f"Applying migration: {migration_path.name}")
                try:
                    conn.executescript(migration_path.read_text(encoding="utf-8"))
                    conn.commit()
                except sqlite3.Error as e:
                    logger.error(f"Migration failed: {migration_path.name}: {e}")
                    raise
        finally:
            conn.close()

        return len(pending)

    def get_status(self) -> dict:
        conn = get_connection(self.db_path)
        try:
            current_version = get_current_version(conn)
        finally:
            conn.close()

        pending = self.get_pending_migrations()
        return {
            "current_version": current_version,
            "pending_migrations": len(pending),
            "pending_files": [p.name for _, p in pending],
            "database_path": str(self.db_path),
        }


def init_database(db_path: Path | str | None = None) -> Path:
    """
    Run all pending migrations.

    Returns:
        Path of the initialized database
    """
    runner = MigrationRunner(db_path)
    applied = runner.run_migrations()
    if applied > 0:
        logger.info(f"Applied {applied} migration(s) to {runner.db_path}")
    return runner.db_path


def verify_schema(conn: sqlite3.Connection) -> dict:
    """Check that every expected table exists."""
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    existing_tables = [row[0] for row in cursor.fetchall()]
    missing = [t for t in EXPECTED_TABLES if t not in existing_tables]

    return {
        "valid": not missing,
        "existing": existing_tables,
        "missing": missing,
    }


if __name__ == "__main__":
    import fire

    def status(db_path: str | None = None):
        """Show migration status."""
        return MigrationRunner(db_path).get_status()

    def migrate(db_path: str | None = None):
        """Run pending migrations."""
        return {"applied": MigrationRunner(db_path).run_migrations()}

    fire.Fire({"status": status, "migrate": migrate})
