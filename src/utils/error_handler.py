# SPDX-License-Identifier: MIT
"""Reporting for failures the dispatch core absorbs instead of raising."""

from __future__ import annotations

from abc import ABC, abstractmethod

import logfire


class ErrorHandler(ABC):
    """Interface for reporting errors.

    The dispatch loop and the admission queue keep running after a failed
    call or delivery; they hand the failure to an ``ErrorHandler`` instead.
    Implementations must not raise.
    """

    @abstractmethod
    def handle(self, message: str, exc: BaseException | None = None) -> None:
        """Record ``message`` with optional ``exc`` context."""


class LoggingErrorHandler(ErrorHandler):
    """Error handler that logs via ``logfire``."""

    def handle(self, message: str, exc: BaseException | None = None) -> None:
        """Log ``message`` with the exception type and text as attributes."""
        if exc is None:
            logfire.error(message)
            return
        logfire.error(
            "{message}: {error}",
            message=message,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )


class CollectingErrorHandler(ErrorHandler):
    """Keep reported failures in memory, for diagnostics and tests."""

    def __init__(self) -> None:
        self.reports: list[tuple[str, BaseException | None]] = []

    def handle(self, message: str, exc: BaseException | None = None) -> None:
        self.reports.append((message, exc))
