# SPDX-License-Identifier: MIT
"""Single-worker dispatch loop draining the admission queue.

The loop pops one item at a time, announces it, awaits the suggestion client
and delivers exactly one terminal event to the channel captured before the
call. No other item is dispatched until that delivery finishes, so at most one
suggestion call is in flight per process.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from typing import TYPE_CHECKING

import logfire

from llm.suggestion import SuggestionAgent, SuggestionClient
from utils import ErrorHandler, LoggingErrorHandler

from .channels import ChannelRegistry
from .models import (
    ERROR,
    PROCESSING_STARTED,
    SUGGESTION_RESPONSE,
    ErrorEvent,
    ProcessingStarted,
    QueueItem,
    QueueStats,
    SuggestionResponse,
    payload,
)
from .queue import DEFAULT_SECONDS_PER_ITEM, AdmissionQueue

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from runtime.settings import Settings

FAILURE_MESSAGE = "Failed to get suggestion from the suggestion service"


class DispatchLoop:
    """Drain ``queue`` through ``client`` one item at a time."""

    def __init__(
        self,
        queue: AdmissionQueue,
        client: SuggestionClient,
        channels: ChannelRegistry,
        *,
        redispatch_delay: float = 0.1,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._queue = queue
        self._client = client
        self._channels = channels
        self._redispatch_delay = redispatch_delay
        self._error_handler = error_handler or LoggingErrorHandler()
        self._completed = logfire.metric_counter("dispatch_completed")
        self._failed = logfire.metric_counter("dispatch_failed")
        self._dropped = logfire.metric_counter("dispatch_dropped")

    async def _emit(self, channel_id: str, event: str, data: dict) -> None:
        try:
            await self._channels.emit(channel_id, event, data)
        except Exception as exc:  # pylint: disable=broad-except
            self._error_handler.handle(
                f"Failed to deliver {event} to channel {channel_id}", exc
            )

    async def _dispatch(self, item: QueueItem) -> tuple[str, dict]:
        """Return the terminal event and payload for ``item``."""
        started = time.monotonic()
        try:
            suggestion = await self._client.get_suggestion(item.payload)
        except Exception as exc:  # pylint: disable=broad-except
            self._failed.add(1)
            self._error_handler.handle(f"Request {item.id} failed", exc)
            return ERROR, payload(
                ErrorEvent(message=FAILURE_MESSAGE, error=str(exc), request_id=item.id)
            )
        elapsed_ms = int((time.monotonic() - started) * 1000)
        self._completed.add(1)
        logfire.info(
            "Request completed",
            request_id=item.id,
            processing_time_ms=elapsed_ms,
            attempts=suggestion.attempts,
        )
        return SUGGESTION_RESPONSE, payload(
            SuggestionResponse(
                request_id=item.id,
                suggestion=suggestion.text,
                processing_time=elapsed_ms,
            )
        )

    async def process_next(self) -> bool:
        """Process the head of the queue if the loop is idle.

        Returns:
            ``True`` when an item was dispatched.
        """
        item = await self._queue.next_item()
        if item is None:
            return False
        channel_id = item.channel_id
        with logfire.span(
            "dispatch.process",
            attributes={"request_id": item.id, "user_id": item.user_id},
        ):
            try:
                await self._emit(
                    channel_id,
                    PROCESSING_STARTED,
                    payload(ProcessingStarted(request_id=item.id)),
                )
                await self._queue.broadcast_positions()
                event, data = await self._dispatch(item)
                if item.cancelled:
                    self._dropped.add(1)
                    logfire.info(
                        "Dropping result for cancelled request",
                        request_id=item.id,
                        event=event,
                    )
                else:
                    await self._emit(channel_id, event, data)
            finally:
                await self._queue.complete(item)
        return True

    async def run(self) -> None:
        """Drain the queue until cancelled."""
        logfire.info("Dispatch loop started")
        while True:
            await self._queue.wait_for_work()
            processed = await self.process_next()
            if processed and len(self._queue):
                await asyncio.sleep(self._redispatch_delay)


class Engine:
    """Own the admission queue, the dispatch loop and the suggestion client.

    Usage:
        engine = Engine(client, channels)
        engine.start()
        await engine.queue.enqueue(user_id, channel_id, code)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        client: SuggestionClient,
        channels: ChannelRegistry,
        *,
        seconds_per_item: int = DEFAULT_SECONDS_PER_ITEM,
        redispatch_delay: float = 0.1,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self.client = client
        self.channels = channels
        self.queue = AdmissionQueue(
            channels, seconds_per_item=seconds_per_item, error_handler=error_handler
        )
        self.loop = DispatchLoop(
            self.queue,
            client,
            channels,
            redispatch_delay=redispatch_delay,
            error_handler=error_handler,
        )
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        channels: ChannelRegistry,
        *,
        agent: SuggestionAgent | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> "Engine":
        """Build an engine from application ``settings``."""
        return cls(
            SuggestionClient.from_settings(settings, agent=agent),
            channels,
            seconds_per_item=settings.seconds_per_item,
            redispatch_delay=settings.redispatch_delay,
            error_handler=error_handler,
        )

    @property
    def running(self) -> bool:
        """Return ``True`` while the worker task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Spawn the dispatch worker on the running event loop."""
        if self.running:
            logfire.warning("Dispatch engine already running")
            return
        self._task = asyncio.create_task(self.loop.run(), name="dispatch-loop")
        logfire.info("Dispatch engine started")

    async def stop(self) -> None:
        """Cancel the worker and any call still running after a timeout."""
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.client.abandon_late_calls()
        logfire.info("Dispatch engine stopped")

    def stats(self) -> QueueStats:
        """Return the admission queue snapshot."""
        return self.queue.stats()

    async def clear(self) -> int:
        """Administrative reset of the admission queue."""
        return await self.queue.clear()


__all__ = ["DispatchLoop", "Engine", "FAILURE_MESSAGE"]
