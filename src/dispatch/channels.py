# SPDX-License-Identifier: MIT
"""Collaborator interfaces for channel delivery and session lookup.

The dispatch core never talks to a transport directly. It addresses clients
through a :class:`ChannelRegistry` and trusts the user identity returned by a
:class:`SessionValidator`. :class:`InMemoryChannelRegistry` is the in-process
implementation used by the command line and the tests.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Protocol

import logfire

Listener = Callable[[str, dict[str, Any]], Awaitable[None] | None]
DisconnectHook = Callable[[str], Awaitable[None]]


class SessionRecord(Protocol):
    """Minimal view of an authenticated session."""

    user_id: str


class SessionValidator(Protocol):
    """Identity collaborator resolving opaque tokens to sessions."""

    def validate(self, token: str, channel_id: str) -> SessionRecord | None:
        """Return the session bound to ``token`` or ``None`` when invalid."""
        ...

    def remove(self, token: str) -> bool:
        """Forget the session for ``token``."""
        ...


class ChannelRegistry(Protocol):
    """Transport collaborator delivering named events to one channel."""

    async def emit(self, channel_id: str, event: str, data: dict[str, Any]) -> None:
        """Deliver ``event`` to ``channel_id``; no-op when the channel is gone."""
        ...

    async def disconnect(self, channel_id: str) -> None:
        """Close ``channel_id`` and notify disconnect hooks."""
        ...


class InMemoryChannelRegistry:
    """Deliver events to listeners registered per channel."""

    def __init__(self) -> None:
        self._listeners: dict[str, Listener | None] = {}
        self._hooks: list[DisconnectHook] = []

    def connect(self, channel_id: str, listener: Listener | None = None) -> None:
        """Register ``channel_id`` with an optional event ``listener``."""
        self._listeners[channel_id] = listener
        logfire.debug("Channel connected", channel_id=channel_id)

    def is_connected(self, channel_id: str) -> bool:
        """Return ``True`` while ``channel_id`` is registered."""
        return channel_id in self._listeners

    def on_disconnect(self, hook: DisconnectHook) -> None:
        """Call ``hook`` with the channel id whenever a channel closes."""
        self._hooks.append(hook)

    async def emit(self, channel_id: str, event: str, data: dict[str, Any]) -> None:
        if channel_id not in self._listeners:
            logfire.debug(
                "Dropping event for closed channel", channel_id=channel_id, event=event
            )
            return
        listener = self._listeners[channel_id]
        if listener is None:
            return
        result = listener(event, data)
        if inspect.isawaitable(result):
            await result

    async def disconnect(self, channel_id: str) -> None:
        if channel_id not in self._listeners:
            return
        del self._listeners[channel_id]
        logfire.debug("Channel disconnected", channel_id=channel_id)
        for hook in self._hooks:
            await hook(channel_id)


__all__ = [
    "ChannelRegistry",
    "InMemoryChannelRegistry",
    "Listener",
    "SessionRecord",
    "SessionValidator",
]
