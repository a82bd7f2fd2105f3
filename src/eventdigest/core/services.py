"""
Service wiring for eventdigest

Builds the object graph for one process from DigestSettings. Every
collaborator is constructed here and injected; nothing below this layer
reaches for module-level singletons.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from eventdigest.batching.orchestrator import FlushOrchestrator
from eventdigest.batching.policy import BatchPolicy
from eventdigest.batching.transaction import FlushTransactionManager
from eventdigest.core.config import ChannelMap, DigestSettings, get_api_key
from eventdigest.delivery.slack import Notifier, SlackWebhookNotifier
from eventdigest.jobs.processor import ProjectEventProcessor
from eventdigest.jobs.sweep import SweepResult, SweepScheduler
from eventdigest.store.events import SQLiteEventStore
from eventdigest.store.runs import FlushRunLog
from eventdigest.summarize.summarizer import OpenAIDigestSummarizer

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything one eventdigest process needs."""

    settings: DigestSettings
    channels: ChannelMap
    store: SQLiteEventStore
    run_log: FlushRunLog
    policy: BatchPolicy
    summarizer: OpenAIDigestSummarizer
    notifier: Notifier
    transaction_manager: FlushTransactionManager
    orchestrator: FlushOrchestrator
    processor: ProjectEventProcessor

    def sweep_scheduler(
        self, on_sweep_complete: Callable[[SweepResult], None] | None = None
    ) -> SweepScheduler:
        return SweepScheduler(
            processor=self.processor,
            channels=self.channels,
            store=self.store,
            interval_seconds=self.settings.sweep.interval_seconds,
            concurrency=self.settings.sweep.concurrency,
            on_sweep_complete=on_sweep_complete,
        )


def build_services(
    settings: DigestSettings,
    environ: dict[str, str] | None = None,
    summarizer: OpenAIDigestSummarizer | None = None,
    notifier: Notifier | None = None,
) -> Services:
    """
    Construct and validate all services.

    Args:
        settings: Validated settings
        environ: Environment used to resolve ``env:`` channel references
        summarizer: Replacement summarizer
        notifier: Replacement notifier

    Raises:
        ConfigError: If the channel map cannot be resolved or thresholds are invalid
    """
    channels = ChannelMap.from_config(settings.channels, environ=environ)
    if not channels:
        logger.warning("No channels configured; every project will be rejected")

    store = SQLiteEventStore(settings.db_path)
    run_log = FlushRunLog(store.db_path)

    policy = BatchPolicy(
        count_threshold=settings.batching.count_threshold,
        max_age_seconds=settings.batching.max_age_seconds,
    )

    if summarizer is None:
        summarizer = OpenAIDigestSummarizer(
            api_key=get_api_key(),
            model=settings.summarizer.model,
            max_payload_tokens=settings.summarizer.max_payload_tokens,
            max_completion_tokens=settings.summarizer.max_completion_tokens,
        )

    if notifier is None:
        notifier = SlackWebhookNotifier(timeout=settings.delivery.timeout_seconds)

    transaction_manager = FlushTransactionManager(store, notifier, channels)
    orchestrator = FlushOrchestrator(
        summarizer=summarizer,
        transaction_manager=transaction_manager,
        max_chunk_size=settings.batching.max_chunk_size,
        inter_chunk_delay_ms=settings.batching.inter_chunk_delay_ms,
    )
    processor = ProjectEventProcessor(
        store=store,
        policy=policy,
        orchestrator=orchestrator,
        notifier=notifier,
        channels=channels,
        run_log=run_log,
        deliver_fallback_on_error=settings.delivery.deliver_fallback_on_error,
    )

    return Services(
        settings=settings,
        channels=channels,
        store=store,
        run_log=run_log,
        policy=policy,
        summarizer=summarizer,
        notifier=notifier,
        transaction_manager=transaction_manager,
        orchestrator=orchestrator,
        processor=processor,
    )
