"""Command-line interface for eventdigest."""

import json
import logging
import signal
import sys
import time
from pathlib import Path

import fire
from dotenv import load_dotenv

from eventdigest.batching.models import Event
from eventdigest.core.config import load_settings
from eventdigest.core.errors import ConfigError
from eventdigest.core.logging import setup_logging
from eventdigest.core.paths import ensure_data_directories
from eventdigest.core.services import Services, build_services
from eventdigest.db.migrations import MigrationRunner

# Load .env from the working directory (secrets: OPENAI_API_KEY, webhook URLs)
load_dotenv()

logger = logging.getLogger(__name__)


def _read_payload(payload_file: str) -> dict:
    """Read an event payload from a file, or stdin when the path is '-'."""
    if payload_file == "-":
        body = json.load(sys.stdin)
    else:
        with open(payload_file, encoding="utf-8") as f:
            body = json.load(f)

    # Payloads that already carry the stored shape are kept as-is
    if isinstance(body, dict) and ("message" in body or "raw" in body):
        return body
    return {"raw": body}


class DigestCLI:
    """eventdigest commands."""

    def __init__(self, config: str | None = None, log_level: str = "INFO", log_files: bool = True):
        """
        Args:
            config: Path to config.json (defaults to DATA_ROOT/config.json)
            log_level: Console log level
            log_files: Also write rotating text and JSON-lines logs
        """
        self._config_path = config
        self._log_level = log_level
        self._log_files = log_files
        self._services: Services | None = None

    def _setup(self) -> Services:
        if self._services is None:
            ensure_data_directories()
            if self._log_files:
                setup_logging(console_level=self._log_level)
            else:
                setup_logging(console_level=self._log_level, log_file=None, structured_file=None)
            try:
                settings = load_settings(path=self._config_path)
                self._services = build_services(settings)
            except ConfigError as e:
                logger.error(f"Configuration error: {e}")
                sys.exit(2)
        return self._services

    def ingest(
        self,
        project: str,
        source: str,
        payload_file: str,
        occurred_at: float | None = None,
    ) -> dict:
        """Store one event and run the event-triggered check for its project.

        Args:
            project: Project key (must be mapped to a channel)
            source: Event source, e.g. github or trello
            payload_file: JSON payload file, or '-' for stdin
            occurred_at: Event time in epoch seconds (defaults to now)
        """
        services = self._setup()
        event = Event.new(project, source, _read_payload(payload_file), occurred_at=occurred_at)
        try:
            result = services.processor.ingest(event)
        except ConfigError as e:
            logger.error(str(e))
            sys.exit(2)
        return {"event_id": event.id, **result.to_dict()}

    def check(self, project: str, sweep: bool = False) -> dict:
        """Evaluate the batch policy for one project and flush if due.

        Args:
            project: Project key
            sweep: Apply the age rule as a scheduled sweep would
        """
        services = self._setup()
        return services.processor.process_project(project, is_scheduled_sweep=sweep).to_dict()

    def sweep(self) -> dict:
        """Run one sweep over every known project now."""
        services = self._setup()
        return services.sweep_scheduler().trigger_now().to_dict()

    def serve(self, run_now: bool = False) -> None:
        """Run the sweep scheduler until interrupted.

        Args:
            run_now: Sweep once immediately on start
        """
        services = self._setup()
        scheduler = services.sweep_scheduler()

        def signal_handler(sig, frame):
            logger.info("Stopping sweep scheduler...")
            scheduler.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler.start(run_now=run_now)
        logger.info(f"Next sweep: {scheduler.get_next_run_time()}")

        # Keep main thread alive
        try:
            while scheduler.is_running():
                time.sleep(1)
        except KeyboardInterrupt:
            scheduler.stop()

    def status(self, limit: int = 20, project: str | None = None) -> dict:
        """Show pending events per project and recent flush runs.

        Args:
            limit: Number of runs to show
            project: Only show this project
        """
        services = self._setup()
        projects = [project] if project else services.store.list_projects()

        runs = []
        for run in services.run_log.get_recent_runs(limit=limit, project_key=project):
            runs.append(
                {
                    "run_id": run.run_id[:8],
                    "project": run.project_key,
                    "trigger": run.trigger,
                    "status": run.status,
                    "events": run.event_count,
                    "started": run.started_ts.strftime("%Y-%m-%d %H:%M:%S"),
                    "error": run.last_error[:80] if run.last_error else None,
                }
            )

        return {
            "pending": {p: services.store.count(p) for p in projects},
            "recent_runs": runs,
        }

    def migrate(self) -> dict:
        """Apply pending database migrations."""
        ensure_data_directories()
        settings = load_settings(path=self._config_path)
        runner = MigrationRunner(settings.db_path)
        applied = runner.run_migrations()
        return {"applied": applied, **runner.get_status()}

    def projects(self) -> dict:
        """List configured projects and projects with pending events."""
        services = self._setup()
        stored = services.store.list_projects()
        return {
            "configured": services.channels.project_keys(),
            "with_pending_events": stored,
            "unmapped": [p for p in stored if p not in services.channels],
        }


def main() -> None:
    """Main entry point for the eventdigest CLI."""
    fire.Fire(DigestCLI)


if __name__ == "__main__":
    main()
