# SPDX-License-Identifier: MIT
"""Queue records and the payloads of every channel event.

Outbound payload models serialise with camelCase keys so the wire format
matches what real-time clients already consume; use :func:`payload` to dump
them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ItemStatus = Literal["queued", "processing"]

# Event names shared by the queue, the dispatch loop and the gateway.
QUEUED = "queued"
PROCESSING_STARTED = "processing-started"
POSITION_UPDATE = "queue-position-update"
SUGGESTION_RESPONSE = "suggestion-response"
REQUEST_CANCELLED = "request-cancelled"
AUTHENTICATED = "authenticated"
ERROR = "error"

DUPLICATE_MESSAGE = "You already have a pending request in queue"


@dataclass
class QueueItem:
    """A pending suggestion request owned by the admission queue."""

    id: int
    user_id: str
    channel_id: str
    payload: str
    enqueued_at: datetime
    status: ItemStatus = "queued"
    cancelled: bool = False


class WireModel(BaseModel):
    """Base model emitting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnqueueResult(WireModel):
    """Outcome of an admission attempt, sent back as the ``queued`` event."""

    id: int
    position: int = Field(..., ge=1)
    queue_length: int
    duplicate: bool = Field(False, exclude=True)
    message: str | None = None


class QueueStatus(WireModel):
    """Position and wait estimate for a single channel."""

    in_queue: bool
    position: int = 0
    queue_length: int
    estimated_wait_time: int = 0
    request_id: int | None = None


class QueueItemSummary(WireModel):
    """Item entry exposed by :meth:`AdmissionQueue.stats`."""

    id: int
    user_id: str
    status: ItemStatus
    enqueued_at: datetime


class QueueStats(WireModel):
    """Introspection snapshot of the admission queue."""

    queue_length: int
    is_processing: bool
    total_ever_admitted: int
    items: list[QueueItemSummary] = Field(default_factory=list)


class PositionUpdate(WireModel):
    """Payload of ``queue-position-update``."""

    position: int
    queue_length: int
    estimated_wait_time: int
    request_id: int


class ProcessingStarted(WireModel):
    """Payload of ``processing-started``."""

    request_id: int
    message: str = "Your request is being processed"


class SuggestionResponse(WireModel):
    """Payload of ``suggestion-response``."""

    success: bool = True
    request_id: int
    suggestion: str
    processing_time: int = Field(..., description="Elapsed milliseconds.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorEvent(WireModel):
    """Payload of ``error``."""

    message: str
    error: str | None = None
    request_id: int | None = None


def payload(model: BaseModel) -> dict[str, Any]:
    """Return the JSON-ready wire representation of ``model``."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "AUTHENTICATED",
    "DUPLICATE_MESSAGE",
    "ERROR",
    "EnqueueResult",
    "ErrorEvent",
    "ItemStatus",
    "POSITION_UPDATE",
    "PROCESSING_STARTED",
    "PositionUpdate",
    "ProcessingStarted",
    "QUEUED",
    "QueueItem",
    "QueueItemSummary",
    "QueueStats",
    "QueueStatus",
    "REQUEST_CANCELLED",
    "SUGGESTION_RESPONSE",
    "SuggestionResponse",
    "payload",
]
