"""
Project Event Processor for eventdigest

One stateless invocation per trigger:
- event path: store the new event, then check the project's batch
- sweep path: check the project's batch with the age rule enabled

Every processed project gets a row in the flush run log. On the event path a
failed flush attempt falls back to posting the triggering event's own
preformatted message, so a broken summarizer never silences a channel.
"""

import logging
from dataclasses import dataclass
from typing import Any

from eventdigest.batching.models import Event, FlushAction, FlushOutcome
from eventdigest.batching.orchestrator import FlushOrchestrator
from eventdigest.batching.policy import BatchPolicy
from eventdigest.core.config import ChannelMap
from eventdigest.core.errors import DeliveryError, DigestError, StoreError
from eventdigest.core.logging import LogContext, log_exception
from eventdigest.delivery.slack import Notifier
from eventdigest.store.events import EventStore
from eventdigest.store.runs import DELIVERY_FAILED, ERROR, SKIPPED, FlushRunLog

logger = logging.getLogger(__name__)

EVENT_TRIGGER = "event"
SWEEP_TRIGGER = "sweep"

_SUCCESSFUL = {FlushAction.SUMMARY_SENT.value, FlushAction.NO_ACTION.value, SKIPPED}


@dataclass
class ProcessResult:
    """Result of processing one project for one trigger."""

    project_key: str
    trigger: str
    status: str  # a FlushAction value, 'skipped', 'delivery_failed' or 'error'
    event_count: int = 0
    outcome: FlushOutcome | None = None
    error: str | None = None
    fallback_delivered: bool = False
    run_id: str | None = None

    @property
    def flushed(self) -> bool:
        return self.status == FlushAction.SUMMARY_SENT.value

    @property
    def failed(self) -> bool:
        return self.status not in _SUCCESSFUL

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_key": self.project_key,
            "trigger": self.trigger,
            "status": self.status,
            "event_count": self.event_count,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "error": self.error,
            "fallback_delivered": self.fallback_delivered,
        }


@dataclass
class _Attempt:
    status: str
    event_count: int = 0
    outcome: FlushOutcome | None = None
    error: str | None = None


class ProjectEventProcessor:
    """Applies the batch policy to one project and runs the flush when due."""

    def __init__(
        self,
        store: EventStore,
        policy: BatchPolicy,
        orchestrator: FlushOrchestrator,
        notifier: Notifier,
        channels: ChannelMap,
        run_log: FlushRunLog | None = None,
        deliver_fallback_on_error: bool = True,
    ):
        """
        Args:
            store: Event store
            policy: Flush thresholds
            orchestrator: Flush state machine
            notifier: Used directly only for fallback delivery
            channels: Project to channel mapping
            run_log: Flush run log (optional)
            deliver_fallback_on_error: Post the triggering event's message when a flush fails
        """
        self.store = store
        self.policy = policy
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.channels = channels
        self.run_log = run_log
        self.deliver_fallback_on_error = deliver_fallback_on_error

    def ingest(self, event: Event) -> ProcessResult:
        """
        Store a new event and run the event-triggered check for its project.

        Raises:
            ConfigError: If the event's project has no channel
        """
        self.channels.resolve(event.project_key)

        with LogContext(project_key=event.project_key, trigger=EVENT_TRIGGER):
            try:
                self.store.append(event)
            except StoreError as e:
                log_exception(logger, f"Failed to store event {event.id}", e)
                result = ProcessResult(
                    project_key=event.project_key,
                    trigger=EVENT_TRIGGER,
                    status=ERROR,
                    error=str(e),
                )
                result.fallback_delivered = self._deliver_fallback(event)
                return result

            logger.info(f"Stored {event.source} event {event.id}")

        return self.process_project(event.project_key, triggering_event=event)

    def process_project(
        self,
        project_key: str,
        is_scheduled_sweep: bool = False,
        now: float | None = None,
        triggering_event: Event | None = None,
    ) -> ProcessResult:
        """
        Check one project's batch and flush it if the policy says so.

        Args:
            project_key: Project to check
            is_scheduled_sweep: Enables the age rule
            now: Current epoch seconds (defaults to time.time())
            triggering_event: The event that caused this check, if any

        Returns:
            ProcessResult; failures are reported, not raised
        """
        trigger = SWEEP_TRIGGER if is_scheduled_sweep else EVENT_TRIGGER

        with LogContext(project_key=project_key, trigger=trigger):
            run_id = self._start_run(project_key, trigger)
            attempt = self._attempt(project_key, is_scheduled_sweep, now)

            if run_id:
                self._finish_run(run_id, attempt)

            result = ProcessResult(
                project_key=project_key,
                trigger=trigger,
                status=attempt.status,
                event_count=attempt.event_count,
                outcome=attempt.outcome,
                error=attempt.error,
                run_id=run_id,
            )

            if result.failed and triggering_event is not None:
                result.fallback_delivered = self._deliver_fallback(triggering_event)

        return result

    def _start_run(self, project_key: str, trigger: str) -> str | None:
        """Run log failures are logged; they never change the flush result."""
        if self.run_log is None:
            return None
        try:
            return self.run_log.start_run(project_key, trigger)
        except StoreError as e:
            log_exception(logger, f"Could not record flush run for {project_key}", e, level=logging.WARNING)
            return None

    def _finish_run(self, run_id: str, attempt: _Attempt) -> None:
        try:
            self.run_log.finish_run(
                run_id,
                status=attempt.status,
                event_count=attempt.event_count,
                error=attempt.error,
                result=attempt.outcome.to_dict() if attempt.outcome else None,
            )
        except StoreError as e:
            log_exception(logger, f"Could not finish flush run {run_id}", e, level=logging.WARNING)

    def _attempt(self, project_key: str, is_scheduled_sweep: bool, now: float | None) -> _Attempt:
        try:
            events = self.store.query_all(project_key)
        except StoreError as e:
            log_exception(logger, f"Failed to read pending events for {project_key}", e)
            return _Attempt(status=ERROR, error=str(e))

        if not events:
            logger.debug(f"No pending events for {project_key}")
            return _Attempt(
                status=FlushAction.NO_ACTION.value,
                outcome=FlushOutcome(project_key=project_key, event_count=0, action=FlushAction.NO_ACTION),
            )

        if not self.policy.should_flush(events, is_scheduled_sweep=is_scheduled_sweep, now=now):
            logger.info(f"{len(events)} pending event(s) for {project_key}, not flushing yet")
            return _Attempt(status=SKIPPED, event_count=len(events))

        try:
            outcome = self.orchestrator.flush(project_key, events)
        except DeliveryError as e:
            log_exception(logger, f"Delivery failed for {project_key}; events kept", e)
            return _Attempt(status=DELIVERY_FAILED, event_count=len(events), error=str(e))
        except DigestError as e:
            log_exception(logger, f"Flush failed for {project_key}", e)
            return _Attempt(status=ERROR, event_count=len(events), error=str(e))

        error = "; ".join(outcome.errors) if outcome.errors else None
        return _Attempt(
            status=outcome.action.value,
            event_count=outcome.event_count,
            outcome=outcome,
            error=error,
        )

    def _deliver_fallback(self, event: Event) -> bool:
        """Post the event's own message. Errors are logged, never raised."""
        if not self.deliver_fallback_on_error:
            return False

        message = event.payload.get("message")
        if not message:
            logger.debug(f"Event {event.id} has no preformatted message, no fallback sent")
            return False

        try:
            self.notifier.deliver(self.channels.resolve(event.project_key), message)
        except DigestError as e:
            log_exception(logger, f"Fallback delivery failed for event {event.id}", e, level=logging.WARNING)
            return False

        logger.info(f"Posted event {event.id} individually as fallback")
        return True
