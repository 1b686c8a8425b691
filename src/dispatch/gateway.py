# SPDX-License-Identifier: MIT
"""Inbound event handlers for real-time channels.

:class:`ChannelGateway` translates the events a transport receives
(``authenticate``, ``submit-request``, ``cancel-request`` and disconnects)
into admission queue operations and answers on the originating channel.
Session store calls run in a worker thread, off the event loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import logfire

from .channels import ChannelRegistry, SessionValidator
from .models import (
    AUTHENTICATED,
    ERROR,
    QUEUED,
    REQUEST_CANCELLED,
    ErrorEvent,
    payload,
)
from .queue import AdmissionQueue


@dataclass
class _Binding:
    user_id: str
    token: str


class ChannelGateway:
    """Authenticate channels and route their requests into the queue."""

    def __init__(
        self,
        queue: AdmissionQueue,
        channels: ChannelRegistry,
        sessions: SessionValidator,
    ) -> None:
        self._queue = queue
        self._channels = channels
        self._sessions = sessions
        self._bindings: dict[str, _Binding] = {}

    def user_for(self, channel_id: str) -> str | None:
        """Return the authenticated user bound to ``channel_id``."""
        binding = self._bindings.get(channel_id)
        return binding.user_id if binding else None

    async def _error(self, channel_id: str, message: str) -> None:
        await self._channels.emit(channel_id, ERROR, payload(ErrorEvent(message=message)))

    async def authenticate(self, channel_id: str, data: dict[str, Any]) -> bool:
        """Bind ``channel_id`` to the session named by ``data['token']``."""
        token = str(data.get("token") or "")
        session = None
        if token:
            session = await asyncio.to_thread(
                self._sessions.validate, token, channel_id
            )
        if session is None:
            logfire.info("Channel authentication rejected", channel_id=channel_id)
            await self._error(channel_id, "Invalid token")
            await self._channels.disconnect(channel_id)
            return False
        self._bindings[channel_id] = _Binding(user_id=session.user_id, token=token)
        logfire.info(
            "Channel authenticated", channel_id=channel_id, user_id=session.user_id
        )
        await self._channels.emit(
            channel_id, AUTHENTICATED, {"success": True, "userId": session.user_id}
        )
        return True

    async def submit_request(self, channel_id: str, data: dict[str, Any]) -> None:
        """Admit the code in ``data`` for the authenticated ``channel_id``."""
        binding = self._bindings.get(channel_id)
        if binding is None:
            await self._error(channel_id, "Unauthorized")
            return
        code = data.get("code")
        if not isinstance(code, str) or not code:
            await self._error(channel_id, "Code required")
            return
        result = await self._queue.enqueue(
            binding.user_id, channel_id, code, datetime.now(timezone.utc)
        )
        await self._channels.emit(channel_id, QUEUED, payload(result))

    async def cancel_request(self, channel_id: str) -> None:
        """Withdraw the pending request of ``channel_id``."""
        if channel_id not in self._bindings:
            return
        if await self._queue.dequeue_by_channel(channel_id):
            await self._channels.emit(channel_id, REQUEST_CANCELLED, {"success": True})
        else:
            await self._error(channel_id, "No request found")

    async def disconnect(self, channel_id: str) -> None:
        """Release queue and session state held by a closed channel."""
        await self._queue.dequeue_by_channel(channel_id)
        binding = self._bindings.pop(channel_id, None)
        if binding is not None:
            await asyncio.to_thread(self._sessions.remove, binding.token)
        logfire.debug("Channel released", channel_id=channel_id)

    async def handle(
        self, channel_id: str, event: str, data: dict[str, Any] | None = None
    ) -> None:
        """Dispatch a named inbound ``event`` to its handler."""
        data = data or {}
        if event == "authenticate":
            await self.authenticate(channel_id, data)
        elif event == "submit-request":
            await self.submit_request(channel_id, data)
        elif event == "cancel-request":
            await self.cancel_request(channel_id)
        elif event == "disconnect":
            await self.disconnect(channel_id)
        else:
            logfire.warning("Unknown channel event", channel_id=channel_id, event=event)


__all__ = ["ChannelGateway"]
