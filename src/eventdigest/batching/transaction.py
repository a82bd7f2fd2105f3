"""
Flush Transaction Manager

Deliver first, then delete exactly the events that were summarized.

- A DeliveryError propagates and nothing is deleted, so the next trigger
  retries the same batch.
- Once delivery is confirmed the outcome is summary_sent even if some delete
  batches fail; leftovers are reported and may be re-summarized later.
- Events appended after the batch was read are never touched.
"""

import logging

from eventdigest.batching.models import Event, FlushAction, FlushOutcome, SummaryArtifact
from eventdigest.core.config import ChannelMap
from eventdigest.core.errors import StoreError
from eventdigest.delivery.slack import Notifier
from eventdigest.store.events import EventStore, unique_by_id

logger = logging.getLogger(__name__)


class FlushTransactionManager:
    """Commits a finished summary: delivery, then cleanup of the read set."""

    def __init__(self, store: EventStore, notifier: Notifier, channels: ChannelMap):
        self.store = store
        self.notifier = notifier
        self.channels = channels

    def commit(
        self,
        project_key: str,
        final_summary: SummaryArtifact,
        original_events: list[Event],
    ) -> FlushOutcome:
        """
        Deliver ``final_summary`` and delete ``original_events``.

        Args:
            project_key: Project being flushed
            final_summary: Message to deliver
            original_events: The exact set of events the summary was built from

        Returns:
            FlushOutcome with action summary_sent

        Raises:
            ConfigError: If the project has no channel
            DeliveryError: If delivery fails (no events are deleted)
        """
        channel_ref = self.channels.resolve(project_key)

        self.notifier.deliver(channel_ref, final_summary)
        logger.info(f"Delivered summary of {len(original_events)} events for {project_key}")

        to_delete = unique_by_id(original_events)
        outcome = FlushOutcome(
            project_key=project_key,
            event_count=len(original_events),
            action=FlushAction.SUMMARY_SENT,
        )

        try:
            result = self.store.batch_delete(to_delete)
        except StoreError as e:
            logger.warning(
                f"Summary delivered for {project_key} but cleanup failed; "
                f"{len(to_delete)} events remain: {e}"
            )
            outcome.undeleted_count = len(to_delete)
            return outcome

        outcome.deleted_count = result.deleted_count
        outcome.undeleted_count = result.failed_count

        if not result.success:
            failed = [r for r in result.batch_results if not r.success]
            logger.warning(
                f"Summary delivered for {project_key} but {result.failed_count} of "
                f"{result.total_processed} events were not deleted "
                f"({len(failed)} failed batch(es)); they may be summarized again",
                extra={
                    "failed_batches": [
                        {"event_ids": r.event_ids, "error": r.error} for r in failed
                    ]
                },
            )
        else:
            logger.debug(f"Deleted {result.deleted_count} events for {project_key}")

        return outcome
