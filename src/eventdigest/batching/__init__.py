"""
Batching for eventdigest

- Event and flush data model
- Batch policy (count and age thresholds)
- Chunking of a batch into bounded slices

The orchestrator and transaction manager are imported from their modules
directly (``eventdigest.batching.orchestrator``, ``eventdigest.batching.transaction``).
"""

from eventdigest.batching.chunker import chunk_events
from eventdigest.batching.models import (
    Event,
    FlushAction,
    FlushOutcome,
    FlushState,
    SummaryArtifact,
    sort_chronologically,
)
from eventdigest.batching.policy import BatchPolicy

__all__ = [
    "BatchPolicy",
    "Event",
    "FlushAction",
    "FlushOutcome",
    "FlushState",
    "SummaryArtifact",
    "chunk_events",
    "sort_chronologically",
]
