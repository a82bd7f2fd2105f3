"""
Batch Policy Evaluator

Decides whether a project's pending batch should be flushed now:
- a full batch (count threshold reached) flushes on any trigger
- a stale batch (oldest event past the age limit) flushes only on a scheduled sweep
"""

import logging
import time

from eventdigest.batching.models import Event
from eventdigest.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_COUNT_THRESHOLD = 20
DEFAULT_MAX_AGE_SECONDS = 7200


class BatchPolicy:
    """Count and age thresholds for flushing a pending batch."""

    def __init__(
        self,
        count_threshold: int = DEFAULT_COUNT_THRESHOLD,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ):
        if count_threshold < 1:
            raise ConfigError(f"count_threshold must be >= 1, got {count_threshold}")
        if max_age_seconds < 0:
            raise ConfigError(f"max_age_seconds must be >= 0, got {max_age_seconds}")

        self.count_threshold = count_threshold
        self.max_age_seconds = max_age_seconds

    def should_flush(
        self,
        events: list[Event],
        is_scheduled_sweep: bool = False,
        now: float | None = None,
    ) -> bool:
        """
        Evaluate the flush policy for one project's pending events.

        Args:
            events: Pending events, in any order
            is_scheduled_sweep: True when called from the periodic sweep
            now: Current epoch seconds (defaults to time.time())

        Returns:
            True if the batch should be flushed
        """
        if not events:
            return False

        if len(events) >= self.count_threshold:
            logger.debug(f"Count threshold reached: {len(events)} >= {self.count_threshold}")
            return True

        # Age is only enforced by the sweep; an event arrival never flushes on age
        if not is_scheduled_sweep:
            return False

        now = time.time() if now is None else now
        oldest = min(e.occurred_at for e in events)
        age = now - oldest
        if age >= self.max_age_seconds:
            logger.debug(f"Age threshold reached: oldest event is {age:.0f}s old")
            return True

        return False
