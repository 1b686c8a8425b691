# SPDX-License-Identifier: MIT
"""In-memory FIFO admission queue for suggestion requests.

:class:`AdmissionQueue` owns the queue state: the ordered pending items, the
request id counter and the processing latch. Every mutation happens under an
``asyncio.Lock``; events are emitted after the lock is released so slow
channels never stall admissions. Each channel holds at most one queued item.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import logfire

from utils import ErrorHandler, LoggingErrorHandler

from .channels import ChannelRegistry
from .models import (
    DUPLICATE_MESSAGE,
    POSITION_UPDATE,
    EnqueueResult,
    PositionUpdate,
    QueueItem,
    QueueItemSummary,
    QueueStats,
    QueueStatus,
    payload,
)

DEFAULT_SECONDS_PER_ITEM = 3


class AdmissionQueue:
    """Single-owner queue state with position broadcasting."""

    def __init__(
        self,
        channels: ChannelRegistry,
        *,
        seconds_per_item: int = DEFAULT_SECONDS_PER_ITEM,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        if seconds_per_item < 0:
            raise ValueError("seconds_per_item must be >= 0")
        self._channels = channels
        self._seconds_per_item = seconds_per_item
        self._error_handler = error_handler or LoggingErrorHandler()
        self._items: list[QueueItem] = []
        self._counter = 0
        self._processing = False
        self._in_flight: QueueItem | None = None
        self._lock = asyncio.Lock()
        self._work = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._admitted = logfire.metric_counter("queue_admitted")
        self._duplicates = logfire.metric_counter("queue_duplicates")
        self._cancelled = logfire.metric_counter("queue_cancelled")

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_processing(self) -> bool:
        """Return the processing latch."""
        return self._processing

    @property
    def total_admitted(self) -> int:
        """Return the number of requests admitted since start."""
        return self._counter

    def _index_of(self, channel_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.channel_id == channel_id:
                return index
        return -1

    def estimated_wait(self, position: int) -> int:
        """Return the wait estimate in seconds for a 1-based ``position``."""
        return position * self._seconds_per_item

    def _update_idle(self) -> None:
        if self._items or self._processing:
            self._idle.clear()
        else:
            self._idle.set()

    async def enqueue(
        self,
        user_id: str,
        channel_id: str,
        code: str,
        submitted_at: datetime | None = None,
    ) -> EnqueueResult:
        """Admit ``code`` for ``channel_id`` unless it already has a pending item.

        Returns:
            The item id with its 1-based position and the queue length. A
            resubmission returns the existing item with ``duplicate`` set.
        """
        async with self._lock:
            index = self._index_of(channel_id)
            if index != -1:
                existing = self._items[index]
                self._duplicates.add(1)
                logfire.info(
                    "Duplicate submission ignored",
                    request_id=existing.id,
                    user_id=user_id,
                    position=index + 1,
                )
                return EnqueueResult(
                    id=existing.id,
                    position=index + 1,
                    queue_length=len(self._items),
                    duplicate=True,
                    message=DUPLICATE_MESSAGE,
                )
            self._counter += 1
            item = QueueItem(
                id=self._counter,
                user_id=user_id,
                channel_id=channel_id,
                payload=code,
                enqueued_at=submitted_at or datetime.now(timezone.utc),
            )
            self._items.append(item)
            position = len(self._items)
            result = EnqueueResult(
                id=item.id, position=position, queue_length=len(self._items)
            )
            self._admitted.add(1)
            self._update_idle()
            self._work.set()
        logfire.info(
            "Request queued", request_id=item.id, user_id=user_id, position=position
        )
        await self.broadcast_positions()
        return result

    async def dequeue_by_channel(self, channel_id: str) -> bool:
        """Remove the request held by ``channel_id``.

        A queued item is removed outright. An item already being processed is
        only marked cancelled: its outstanding call is not aborted and the
        dispatch loop drops the eventual result.

        Returns:
            ``True`` when a request was removed or marked cancelled.
        """
        async with self._lock:
            index = self._index_of(channel_id)
            if index != -1:
                removed = self._items.pop(index)
                self._update_idle()
            elif (
                self._in_flight is not None
                and self._in_flight.channel_id == channel_id
                and not self._in_flight.cancelled
            ):
                self._in_flight.cancelled = True
                self._cancelled.add(1)
                logfire.info(
                    "In-flight request cancelled",
                    request_id=self._in_flight.id,
                    user_id=self._in_flight.user_id,
                )
                return True
            else:
                return False
        self._cancelled.add(1)
        logfire.info(
            "Request removed", request_id=removed.id, user_id=removed.user_id
        )
        await self.broadcast_positions()
        return True

    def status_for(self, channel_id: str) -> QueueStatus:
        """Return the queue position and wait estimate for ``channel_id``."""
        index = self._index_of(channel_id)
        if index == -1:
            return QueueStatus(in_queue=False, queue_length=len(self._items))
        position = index + 1
        return QueueStatus(
            in_queue=True,
            position=position,
            queue_length=len(self._items),
            estimated_wait_time=self.estimated_wait(position),
            request_id=self._items[index].id,
        )

    def stats(self) -> QueueStats:
        """Return a read-only snapshot of the queue."""
        return QueueStats(
            queue_length=len(self._items),
            is_processing=self._processing,
            total_ever_admitted=self._counter,
            items=[
                QueueItemSummary(
                    id=item.id,
                    user_id=item.user_id,
                    status=item.status,
                    enqueued_at=item.enqueued_at,
                )
                for item in self._items
            ],
        )

    async def clear(self) -> int:
        """Drop every queued item and release the processing latch.

        Removed channels are not notified.

        Returns:
            Number of items removed.
        """
        async with self._lock:
            removed = len(self._items)
            self._items.clear()
            self._processing = False
            self._work.clear()
            self._update_idle()
        logfire.warning("Queue cleared", removed=removed)
        return removed

    async def broadcast_positions(self) -> None:
        """Send the current position to every still-queued channel."""
        async with self._lock:
            queue_length = len(self._items)
            updates = [
                (
                    item.channel_id,
                    PositionUpdate(
                        position=index + 1,
                        queue_length=queue_length,
                        estimated_wait_time=self.estimated_wait(index + 1),
                        request_id=item.id,
                    ),
                )
                for index, item in enumerate(self._items)
            ]
        for channel_id, update in updates:
            try:
                await self._channels.emit(channel_id, POSITION_UPDATE, payload(update))
            except Exception as exc:  # pylint: disable=broad-except
                self._error_handler.handle(
                    f"Failed to send position update to {channel_id}", exc
                )

    async def wait_for_work(self) -> None:
        """Block until an item may be available for dispatch."""
        await self._work.wait()

    async def wait_idle(self) -> None:
        """Block until the queue is empty and nothing is being processed."""
        await self._idle.wait()

    async def next_item(self) -> QueueItem | None:
        """Pop the head item and set the processing latch.

        Returns ``None`` when the queue is empty or another item is still being
        processed.
        """
        async with self._lock:
            if self._processing:
                return None
            if not self._items:
                self._work.clear()
                return None
            item = self._items.pop(0)
            item.status = "processing"
            self._processing = True
            self._in_flight = item
            self._update_idle()
        logfire.info("Processing request", request_id=item.id, user_id=item.user_id)
        return item

    async def complete(self, item: QueueItem) -> None:
        """Release the processing latch held for ``item``."""
        async with self._lock:
            if self._in_flight is item:
                self._in_flight = None
            self._processing = False
            if self._items:
                self._work.set()
            self._update_idle()
        if self._items:
            logfire.info("Requests remaining", count=len(self._items))
        else:
            logfire.info("All requests processed")


__all__ = ["AdmissionQueue", "DEFAULT_SECONDS_PER_ITEM"]
