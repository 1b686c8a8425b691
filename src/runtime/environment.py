# SPDX-License-Identifier: MIT
"""Runtime environment singleton for shared settings and state."""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING

import logfire

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from dispatch.loop import Engine
    from runtime.settings import Settings


class RuntimeEnv:
    """Thread-safe singleton storing application settings and the engine.

    The engine owns all queue state; keeping a single reference here is what
    guarantees one dispatch loop per process.
    """

    _instance: "RuntimeEnv" | None = None
    _lock = Lock()

    def __init__(self, settings: "Settings") -> None:
        """Initialise the runtime environment."""
        self.settings = settings
        self._state_lock = Lock()
        self._engine: "Engine | None" = None
        logfire.debug("RuntimeEnv created", settings=repr(settings))

    @property
    def engine(self) -> "Engine | None":
        """Return the active dispatch engine, if one was attached."""
        with self._state_lock:
            return self._engine

    @engine.setter
    def engine(self, engine: "Engine | None") -> None:
        """Attach ``engine``; a second live engine is rejected."""
        with self._state_lock:
            if (
                engine is not None
                and self._engine is not None
                and self._engine is not engine
                and self._engine.running
            ):
                raise RuntimeError("A dispatch engine is already running")
            self._engine = engine

    @classmethod
    def initialize(cls, settings: "Settings") -> "RuntimeEnv":
        """Initialise and return the runtime environment.

        Args:
            settings: Validated application settings.

        Returns:
            The active :class:`RuntimeEnv` instance.
        """
        with logfire.span("runtime_env.initialize"):
            with cls._lock:
                logfire.info("Initialising runtime environment")
                cls._instance = cls(settings)
                return cls._instance

    @classmethod
    def instance(cls) -> "RuntimeEnv":
        """Return the current runtime environment.

        Raises:
            RuntimeError: If :meth:`initialize` was not called.
        """
        inst = cls._instance
        if inst is None:
            logfire.error("RuntimeEnv accessed before initialisation")
            raise RuntimeError("RuntimeEnv has not been initialised")
        return inst

    @classmethod
    def reset(cls) -> None:
        """Clear the active runtime environment.

        The attached engine is detached but not stopped; callers that started
        it are responsible for awaiting :meth:`Engine.stop` first.
        """
        with logfire.span("runtime_env.reset"):
            with cls._lock:
                logfire.info("Resetting runtime environment")
                inst = cls._instance
                if inst is not None:
                    inst._engine = None
                cls._instance = None


__all__ = ["RuntimeEnv"]
