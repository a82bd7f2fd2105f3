"""
Data Directory Structure Management for eventdigest

All paths are relative to the DATA_ROOT (~/.eventdigest by default).

Directory structure:
    .eventdigest/
    ├── config.json                # Optional settings overrides
    ├── db/eventdigest.sqlite      # Pending events and flush run log
    └── logs/                      # Rotating text and JSON-lines logs
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Allow override via environment variable for testing and deployment
_data_root_override = os.environ.get("EVENTDIGEST_DATA_ROOT")
DATA_ROOT: Path = (
    Path(_data_root_override) if _data_root_override else Path.home() / ".eventdigest"
)

DB_DIR: Path = DATA_ROOT / "db"
LOG_DIR: Path = DATA_ROOT / "logs"

DB_PATH: Path = DB_DIR / "eventdigest.sqlite"
CONFIG_PATH: Path = DATA_ROOT / "config.json"

_REQUIRED_DIRS: tuple[Path, ...] = (
    DB_DIR,
    LOG_DIR,
)


def ensure_data_directories() -> dict[str, bool]:
    """
    Ensure all required data directories exist.

    Idempotent and safe to call on every start.

    Returns:
        Dictionary mapping directory names to whether they were created (True)
        or already existed (False).
    """
    results: dict[str, bool] = {}

    for dir_path in _REQUIRED_DIRS:
        try:
            created = not dir_path.exists()
            dir_path.mkdir(parents=True, exist_ok=True)
            results[str(dir_path.relative_to(DATA_ROOT))] = created
            if created:
                logger.info(f"Created directory: {dir_path}")
        except OSError as e:
            logger.error(f"Failed to create directory {dir_path}: {e}")
            raise

    return results


if __name__ == "__main__":
    import fire

    def init():
        """Initialize all data directories."""
        results = ensure_data_directories()
        return {
            "data_root": str(DATA_ROOT),
            "directories": results,
            "created": sum(1 for created in results.values() if created),
        }

    def show():
        """Show all data paths."""
        return {
            "data_root": str(DATA_ROOT),
            "db_file": str(DB_PATH),
            "logs": str(LOG_DIR),
            "config": str(CONFIG_PATH),
        }

    fire.Fire({"init": init, "show": show})
