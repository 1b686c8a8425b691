# SPDX-License-Identifier: MIT
"""Test configuration for suggestion-queue.

Keeps Logfire local, clears ``SQ_`` environment variables and provides stub
agents plus a recording channel registry so no test reaches the network.
"""

from __future__ import annotations

import asyncio
import os
from types import SimpleNamespace
from typing import Any, Callable

import logfire
import pytest

from dispatch import InMemoryChannelRegistry
from runtime.environment import RuntimeEnv


@pytest.fixture(scope="session", autouse=True)
def _local_logfire():
    """Configure Logfire once without console output or export."""

    logfire.configure(send_to_logfire=False, console=False)
    yield


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove any ``SQ_`` variables inherited from the host environment."""

    for name in list(os.environ):
        if name.upper().startswith("SQ_"):
            monkeypatch.delenv(name, raising=False)
    yield
    RuntimeEnv.reset()


class StubAgent:
    """Agent replaying scripted behaviours, one per call.

    Each behaviour is a string (returned as the output), an exception
    (raised) or a callable returning an awaitable. The last behaviour repeats
    once the script runs out.
    """

    def __init__(self, *behaviours: Any) -> None:
        self.behaviours = list(behaviours) or ["suggestion"]
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def run(self, user_prompt: str) -> SimpleNamespace:
        index = min(len(self.prompts), len(self.behaviours) - 1)
        self.prompts.append(user_prompt)
        behaviour = self.behaviours[index]
        if isinstance(behaviour, BaseException):
            raise behaviour
        if callable(behaviour):
            behaviour = await behaviour()
        return SimpleNamespace(output=behaviour)


class GatedAgent:
    """Agent blocking every call until ``gate`` is set."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.prompts: list[str] = []

    @property
    def started(self) -> int:
        return len(self.prompts)

    async def run(self, user_prompt: str) -> SimpleNamespace:
        self.prompts.append(user_prompt)
        await self.gate.wait()
        return SimpleNamespace(output=f"reviewed {len(self.prompts)}")


class RecordingChannels(InMemoryChannelRegistry):
    """Channel registry remembering every delivered event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def open(self, *channel_ids: str) -> None:
        for channel_id in channel_ids:
            self.connect(channel_id, self._recorder(channel_id))

    def _recorder(self, channel_id: str) -> Callable[[str, dict[str, Any]], None]:
        def _record(event: str, data: dict[str, Any]) -> None:
            self.events.append((channel_id, event, data))

        return _record

    def of(self, channel_id: str) -> list[tuple[str, dict[str, Any]]]:
        """Return ``(event, data)`` pairs delivered to ``channel_id``."""
        return [(event, data) for cid, event, data in self.events if cid == channel_id]

    def names(self, channel_id: str) -> list[str]:
        return [event for event, _ in self.of(channel_id)]


@pytest.fixture()
def stub_agent() -> type[StubAgent]:
    """Provide the scripted :class:`StubAgent` class."""

    return StubAgent


@pytest.fixture()
def gated_agent() -> GatedAgent:
    return GatedAgent()


@pytest.fixture()
def channels() -> RecordingChannels:
    return RecordingChannels()


@pytest.fixture()
def wait_until():
    """Return a coroutine polling ``predicate`` until true or timing out."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
