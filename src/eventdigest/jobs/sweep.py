"""
Scheduled Sweep for eventdigest

Runs the batch policy, age rule included, over every known project on a
fixed interval. The sweep is what flushes quiet projects whose events never
reach the count threshold.

Known projects are the keys of the channel map. Projects that have pending
events but no channel are reported and left alone.

Uses APScheduler for scheduling.
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from eventdigest.core.config import ChannelMap
from eventdigest.core.errors import ConfigError, StoreError
from eventdigest.core.logging import OperationTimer
from eventdigest.jobs.processor import SWEEP_TRIGGER, ProcessResult, ProjectEventProcessor
from eventdigest.store.events import EventStore
from eventdigest.store.runs import ERROR

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "eventdigest_sweep"
DEFAULT_INTERVAL_SECONDS = 900


@dataclass
class SweepResult:
    """Result of one sweep over all known projects."""

    started_at: datetime
    results: list[ProcessResult] = field(default_factory=list)
    unmapped_projects: list[str] = field(default_factory=list)

    @property
    def flushed_count(self) -> int:
        return sum(1 for r in self.results if r.flushed)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "projects": len(self.results),
            "flushed": self.flushed_count,
            "failed": self.failed_count,
            "unmapped_projects": self.unmapped_projects,
            "results": [r.to_dict() for r in self.results],
        }


def run_sweep(
    processor: ProjectEventProcessor,
    channels: ChannelMap,
    store: EventStore,
    concurrency: int = 1,
    now: float | None = None,
) -> SweepResult:
    """
    Check every known project once with ``is_scheduled_sweep=True``.

    Projects are independent: one project's failure is recorded in its result
    and never stops the others.

    Args:
        processor: Per-project processor
        channels: Channel map; its keys are the known projects
        store: Event store, used to find projects with no channel
        concurrency: Number of projects processed at once
        now: Epoch seconds used for every age check in this sweep

    Returns:
        SweepResult
    """
    if concurrency < 1:
        raise ConfigError(f"concurrency must be >= 1, got {concurrency}")

    now = time.time() if now is None else now
    sweep = SweepResult(started_at=datetime.fromtimestamp(now))
    project_keys = channels.project_keys()

    try:
        sweep.unmapped_projects = [p for p in store.list_projects() if p not in channels]
    except StoreError as e:
        logger.warning(f"Could not list stored projects: {e}")

    for project_key in sweep.unmapped_projects:
        logger.warning(f"Project '{project_key}' has pending events but no channel; skipping")

    def process(project_key: str) -> ProcessResult:
        try:
            return processor.process_project(project_key, is_scheduled_sweep=True, now=now)
        except Exception as e:
            logger.error(f"Sweep failed for {project_key}: {e}", exc_info=True)
            return ProcessResult(
                project_key=project_key, trigger=SWEEP_TRIGGER, status=ERROR, error=str(e)
            )

    with OperationTimer(logger, f"sweep of {len(project_keys)} project(s)", level=logging.INFO):
        if concurrency == 1 or len(project_keys) <= 1:
            sweep.results = [process(p) for p in project_keys]
        else:
            with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="sweep") as pool:
                sweep.results = list(pool.map(process, project_keys))

    logger.info(
        f"Sweep complete: {len(sweep.results)} project(s), "
        f"{sweep.flushed_count} flushed, {sweep.failed_count} failed"
    )
    return sweep


class SweepScheduler:
    """
    Schedules the periodic sweep.

    Uses APScheduler to run the sweep on a fixed interval.
    """

    def __init__(
        self,
        processor: ProjectEventProcessor,
        channels: ChannelMap,
        store: EventStore,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        concurrency: int = 1,
        on_sweep_complete: Callable[[SweepResult], None] | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            processor: Per-project processor
            channels: Channel map
            store: Event store
            interval_seconds: Seconds between sweeps
            concurrency: Projects processed at once
            on_sweep_complete: Callback when a sweep completes
        """
        if interval_seconds < 1:
            raise ConfigError(f"interval_seconds must be >= 1, got {interval_seconds}")

        self.processor = processor
        self.channels = channels
        self.store = store
        self.interval_seconds = interval_seconds
        self.concurrency = concurrency
        self.on_sweep_complete = on_sweep_complete

        self.scheduler = BackgroundScheduler()
        self._running = False

    def start(self, run_now: bool = False) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler is already running")
            return

        # A sweep that overruns the interval is skipped, not queued
        self.scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Event Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(f"Sweep scheduler started (every {self.interval_seconds}s)")

        if run_now:
            self._sweep_job()

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=True)
        self._running = False
        logger.info("Sweep scheduler stopped")

    def _sweep_job(self) -> None:
        """Job that runs every interval."""
        result = self.trigger_now()
        if self.on_sweep_complete:
            self.on_sweep_complete(result)

    def trigger_now(self) -> SweepResult:
        """Run one sweep immediately."""
        return run_sweep(
            self.processor,
            self.channels,
            self.store,
            concurrency=self.concurrency,
        )

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    def get_next_run_time(self) -> datetime | None:
        """Get the next scheduled run time."""
        if not self._running:
            return None

        job = self.scheduler.get_job(SWEEP_JOB_ID)
        if job and job.next_run_time:
            return job.next_run_time
        return None
