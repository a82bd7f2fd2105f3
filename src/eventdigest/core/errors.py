"""
Error taxonomy for eventdigest.

Chunk-level summarizer failures are counted and skipped by the flush
orchestrator. Consolidation and delivery failures end a single flush attempt
and leave the pending events in place. Config errors are fatal at startup.
"""


class DigestError(Exception):
    """Base class for all eventdigest errors."""


class ConfigError(DigestError):
    """Invalid threshold, chunk size, interval or channel mapping."""


class StoreError(DigestError):
    """Event store read, write or delete failure."""


class SummarizerError(DigestError):
    """Summarizing one chunk of events failed (transport or output format)."""


class ConsolidationError(DigestError):
    """Merging partial summaries into one report failed."""


class DeliveryError(DigestError):
    """Posting the final summary to the notification channel failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
