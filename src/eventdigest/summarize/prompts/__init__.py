"""
Prompts for eventdigest summarization

Contains structured prompts for:
- Chunk summarization
- Consolidation of partial summaries
"""

from eventdigest.summarize.prompts.digest import (
    CHUNK_SYSTEM_PROMPT,
    CONSOLIDATION_SYSTEM_PROMPT,
    DIGEST_MODEL,
    PayloadTruncator,
    build_chunk_messages,
    build_consolidation_messages,
)

__all__ = [
    "CHUNK_SYSTEM_PROMPT",
    "CONSOLIDATION_SYSTEM_PROMPT",
    "DIGEST_MODEL",
    "PayloadTruncator",
    "build_chunk_messages",
    "build_consolidation_messages",
]
