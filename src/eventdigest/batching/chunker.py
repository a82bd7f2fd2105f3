"""Split a batch into contiguous, size-bounded chunks."""

from eventdigest.batching.models import Event
from eventdigest.core.errors import ConfigError

DEFAULT_MAX_CHUNK_SIZE = 15


def chunk_events(events: list[Event], max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[list[Event]]:
    """
    Slice events into consecutive chunks of at most ``max_chunk_size``.

    Order is preserved and nothing is dropped or deduplicated, so the chunks
    concatenate back to the input. Only the last chunk may be short.

    Raises:
        ConfigError: If max_chunk_size < 1
    """
    if max_chunk_size < 1:
        raise ConfigError(f"max_chunk_size must be >= 1, got {max_chunk_size}")

    return [events[i : i + max_chunk_size] for i in range(0, len(events), max_chunk_size)]
