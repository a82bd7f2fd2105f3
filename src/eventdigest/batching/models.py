"""
Data model for the batching pipeline.

Event is the stored unit. FlushOutcome is the record every flush attempt
produces, whatever its path through the state machine.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Event:
    """
    A webhook event waiting in a project's pending batch.

    ``payload`` is opaque to the pipeline. Ingestion conventionally stores the
    preformatted Slack message under ``"message"`` and the original webhook
    body under ``"raw"``.
    """

    id: str
    project_key: str
    occurred_at: float  # epoch seconds
    source: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(
        cls,
        project_key: str,
        source: str,
        payload: dict[str, Any],
        occurred_at: float | None = None,
    ) -> "Event":
        return cls(
            id=uuid.uuid4().hex,
            project_key=project_key,
            occurred_at=time.time() if occurred_at is None else float(occurred_at),
            source=source,
            payload=payload,
        )


@dataclass
class SummaryArtifact:
    """
    A Slack-ready summary: plain ``text`` fallback plus Block Kit ``blocks``.

    Produced per chunk (partial) and once per flush (consolidated).
    """

    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"text": self.text}
        if self.blocks:
            message["blocks"] = self.blocks
        return message


class FlushAction(str, Enum):
    """Terminal action of a flush."""

    SUMMARY_SENT = "summary_sent"
    NO_ACTION = "no_action"
    ALL_CHUNKS_FAILED = "all_chunks_failed"
    CONSOLIDATION_FAILED = "consolidation_failed"


class FlushState(str, Enum):
    """States of the flush state machine."""

    IDLE = "idle"
    CHUNKING = "chunking"
    SUMMARIZING_CHUNK = "summarizing_chunk"
    CHUNK_FAILED = "chunk_failed"
    ALL_CHUNKS_DONE = "all_chunks_done"
    ALL_CHUNKS_FAILED = "all_chunks_failed"
    CONSOLIDATING = "consolidating"
    CONSOLIDATION_FAILED = "consolidation_failed"
    DELIVERED = "delivered"
    NO_ACTION = "no_action"


@dataclass
class FlushOutcome:
    """Result of one flush attempt for one project."""

    project_key: str
    event_count: int
    action: FlushAction
    partial_count: int = 0
    chunk_error_count: int = 0
    deleted_count: int = 0
    undeleted_count: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data


def sort_chronologically(events: list[Event]) -> list[Event]:
    """Stable sort by occurred_at; ties keep their stored order."""
    return sorted(events, key=lambda e: e.occurred_at)
