"""
Summarizer Orchestrator

Runs one flush of one project's batch through the state machine:

    IDLE -> CHUNKING -> SUMMARIZING_CHUNK (per chunk, CHUNK_FAILED on error)
         -> ALL_CHUNKS_DONE -> CONSOLIDATING -> DELIVERED

with terminal NO_ACTION, ALL_CHUNKS_FAILED and CONSOLIDATION_FAILED.

Chunks are summarized strictly one after another with a fixed pause between
calls. A failed chunk is skipped; the flush only gives up when no chunk
succeeded or the consolidation call fails, and in both cases nothing is
deleted.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol

from eventdigest.batching.chunker import DEFAULT_MAX_CHUNK_SIZE, chunk_events
from eventdigest.batching.models import (
    Event,
    FlushAction,
    FlushOutcome,
    FlushState,
    SummaryArtifact,
    sort_chronologically,
)
from eventdigest.batching.transaction import FlushTransactionManager
from eventdigest.core.errors import ConfigError
from eventdigest.core.logging import OperationTimer, log_exception

logger = logging.getLogger(__name__)

DEFAULT_INTER_CHUNK_DELAY_MS = 1000


class Summarizer(Protocol):
    def summarize_chunk(self, events: list[Event], project_key: str) -> SummaryArtifact: ...


class Consolidator(Protocol):
    def consolidate(self, partial_texts: list[str], project_key: str) -> SummaryArtifact: ...


class FlushOrchestrator:
    """
    Drives chunking, summarization, consolidation and commit for one batch.

    ``state`` and ``transitions`` describe the most recent flush on the
    calling thread.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        transaction_manager: FlushTransactionManager,
        consolidator: Consolidator | None = None,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        inter_chunk_delay_ms: int = DEFAULT_INTER_CHUNK_DELAY_MS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            summarizer: Chunk summarization capability
            transaction_manager: Delivery and cleanup
            consolidator: Consolidation capability (defaults to the summarizer)
            max_chunk_size: Maximum events per chunk
            inter_chunk_delay_ms: Pause before every chunk call after the first
            sleep: Sleep function, replaceable in tests
        """
        if max_chunk_size < 1:
            raise ConfigError(f"max_chunk_size must be >= 1, got {max_chunk_size}")
        if inter_chunk_delay_ms < 0:
            raise ConfigError(f"inter_chunk_delay_ms must be >= 0, got {inter_chunk_delay_ms}")

        self.summarizer = summarizer
        self.consolidator = consolidator if consolidator is not None else summarizer
        self.transaction_manager = transaction_manager
        self.max_chunk_size = max_chunk_size
        self.inter_chunk_delay_ms = inter_chunk_delay_ms
        self._sleep = sleep
        self._local = threading.local()

    @property
    def state(self) -> FlushState:
        return getattr(self._local, "state", FlushState.IDLE)

    @property
    def transitions(self) -> list[FlushState]:
        return list(getattr(self._local, "transitions", []))

    def _enter(self, state: FlushState) -> None:
        self._local.state = state
        self._local.transitions.append(state)

    def flush(self, project_key: str, events: list[Event]) -> FlushOutcome:
        """
        Summarize and commit one batch.

        Args:
            project_key: Project being flushed
            events: The batch as read from the store; exactly these are deleted on success

        Returns:
            FlushOutcome describing the terminal state

        Raises:
            DeliveryError: If the final summary could not be delivered
            ConfigError: If the project has no channel
        """
        self._local.transitions = []
        self._enter(FlushState.IDLE)

        if not events:
            self._enter(FlushState.NO_ACTION)
            return FlushOutcome(project_key=project_key, event_count=0, action=FlushAction.NO_ACTION)

        with OperationTimer(
            logger, f"flush {project_key}", level=logging.INFO, flushed_project=project_key
        ):
            return self._run(project_key, events)

    def _run(self, project_key: str, events: list[Event]) -> FlushOutcome:
        self._enter(FlushState.CHUNKING)
        chunks = chunk_events(sort_chronologically(events), self.max_chunk_size)
        logger.info(f"Flushing {len(events)} events for {project_key} in {len(chunks)} chunk(s)")

        partials: list[SummaryArtifact] = []
        errors: list[str] = []

        for index, chunk in enumerate(chunks):
            if index > 0 and self.inter_chunk_delay_ms > 0:
                self._sleep(self.inter_chunk_delay_ms / 1000)

            self._enter(FlushState.SUMMARIZING_CHUNK)
            try:
                partials.append(self.summarizer.summarize_chunk(chunk, project_key))
            except Exception as e:
                self._enter(FlushState.CHUNK_FAILED)
                errors.append(f"chunk {index + 1}/{len(chunks)}: {e}")
                log_exception(
                    logger,
                    f"Chunk {index + 1}/{len(chunks)} failed for {project_key}, skipping",
                    e,
                    level=logging.WARNING,
                    flushed_project=project_key,
                    chunk_index=index,
                )

        if not partials:
            self._enter(FlushState.ALL_CHUNKS_FAILED)
            logger.error(f"All {len(chunks)} chunk(s) failed for {project_key}; events kept")
            return FlushOutcome(
                project_key=project_key,
                event_count=len(events),
                action=FlushAction.ALL_CHUNKS_FAILED,
                chunk_error_count=len(errors),
                errors=errors,
            )

        self._enter(FlushState.ALL_CHUNKS_DONE)

        if len(partials) == 1 and not errors:
            # The only chunk covered the whole batch
            final_summary = partials[0]
        else:
            self._enter(FlushState.CONSOLIDATING)
            try:
                final_summary = self.consolidator.consolidate(
                    [p.text for p in partials], project_key
                )
            except Exception as e:
                self._enter(FlushState.CONSOLIDATION_FAILED)
                errors.append(f"consolidation: {e}")
                log_exception(
                    logger,
                    f"Consolidation failed for {project_key}; events kept",
                    e,
                    flushed_project=project_key,
                )
                return FlushOutcome(
                    project_key=project_key,
                    event_count=len(events),
                    action=FlushAction.CONSOLIDATION_FAILED,
                    partial_count=len(partials),
                    chunk_error_count=len(errors) - 1,
                    errors=errors,
                )

        outcome = self.transaction_manager.commit(project_key, final_summary, events)
        self._enter(FlushState.DELIVERED)

        outcome.partial_count = len(partials)
        outcome.chunk_error_count = len(errors)
        outcome.errors = errors

        logger.info(
            f"Summary sent for {project_key}: {len(events)} events, "
            f"{len(partials)} partial(s), {len(errors)} chunk error(s)",
            extra={"flush": outcome.to_dict()},
        )
        return outcome
