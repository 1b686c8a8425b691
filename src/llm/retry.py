# SPDX-License-Identifier: MIT
"""Retry helpers for suggestion requests.

This module centralises failure classification, the per-attempt timeout race
and the fixed-delay retry loop so the suggestion client stays a thin wrapper
around the model call.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import logfire

from .errors import (
    ConfigurationFailure,
    InvalidRequestFailure,
    QuotaFailure,
    SuggestionError,
    TerminalServiceFailure,
    TimeoutFailure,
    TransientServiceFailure,
)

T = TypeVar("T")


# -- Failure classification ------------------------------------------------------

CREDENTIAL_MARKERS: tuple[str, ...] = ("api_key", "api key", "unauthenticated")
PERMISSION_MARKERS: tuple[str, ...] = ("permission_denied", "permission denied")
QUOTA_MARKERS: tuple[str, ...] = ("quota", "resource_exhausted")
RATE_LIMIT_MARKERS: tuple[str, ...] = ("rate limit", "rate_limit_exceeded")
INVALID_MARKERS: tuple[str, ...] = ("invalid_argument",)
TIMEOUT_MARKERS: tuple[str, ...] = ("timeout", "timed out")


def _status_code(exc: BaseException) -> int | None:
    """Return the HTTP status attached to ``exc`` by the provider SDK."""
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def _matches(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def classify(exc: BaseException) -> SuggestionError:
    """Map ``exc`` onto the suggestion failure taxonomy.

    Checks run in priority order: credentials, quota and rate limits,
    timeouts, malformed input, then everything else as a transient failure.
    Already classified failures are returned unchanged.
    """
    if isinstance(exc, SuggestionError):
        return exc

    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    status = _status_code(exc)

    if status == 403 or _matches(lowered, PERMISSION_MARKERS):
        return ConfigurationFailure(
            "Permission denied. Please check your API key permissions."
        )
    if status == 401 or _matches(lowered, CREDENTIAL_MARKERS):
        return ConfigurationFailure(
            "Suggestion service API key configuration error. Please check your API key."
        )
    if _matches(lowered, QUOTA_MARKERS):
        return QuotaFailure(
            "Suggestion service quota exceeded. Please try again later."
        )
    if status == 429 or _matches(lowered, RATE_LIMIT_MARKERS):
        return QuotaFailure(
            "Suggestion service rate limit exceeded. "
            "Please wait a moment and try again."
        )
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or _matches(
        lowered, TIMEOUT_MARKERS
    ):
        return TimeoutFailure("Request timeout")
    if status == 400 or _matches(lowered, INVALID_MARKERS):
        return InvalidRequestFailure("Invalid input provided to the suggestion service.")
    return TransientServiceFailure(message)


def _exhausted(failure: SuggestionError, attempts: int) -> TerminalServiceFailure:
    """Return the terminal failure raised once the retry budget is spent."""
    if isinstance(failure, TimeoutFailure):
        message = f"Request timed out after {attempts} attempts. Please try again."
    else:
        message = f"Failed to get suggestion: {failure.message}"
    terminal = TerminalServiceFailure(message, attempts=attempts)
    terminal.last_failure = failure
    return terminal


# -- Timeout race ----------------------------------------------------------------


class TimeoutRace:
    """Race calls against a timeout without cancelling the losing call.

    A call that loses the race keeps running in the background; its eventual
    result or exception is logged and dropped. Abandoned calls are tracked so
    :meth:`abandon_all` can cancel them on shutdown.
    """

    def __init__(self) -> None:
        self._abandoned: set[asyncio.Future[object]] = set()

    @property
    def outstanding(self) -> int:
        """Return the number of abandoned calls still running."""
        return len(self._abandoned)

    def _drop_late(self, task: asyncio.Future[object]) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logfire.debug("Late suggestion failure discarded", error=str(exc))
        else:
            logfire.debug("Late suggestion response discarded")

    async def run(self, coro: Awaitable[T], timeout: float) -> T:
        """Await ``coro`` for at most ``timeout`` seconds.

        Raises:
            TimeoutFailure: If the timeout settles first.
        """
        task = asyncio.ensure_future(coro)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()
        self._abandoned.add(task)
        task.add_done_callback(self._drop_late)
        raise TimeoutFailure("Request timeout")

    def abandon_all(self) -> None:
        """Cancel every call still running after losing its race."""
        for task in list(self._abandoned):
            task.cancel()


# -- Retry loop ------------------------------------------------------------------


async def with_retry(
    call: Callable[[int], Awaitable[T]],
    *,
    max_retries: int,
    delay: float,
    first_attempt: int = 0,
) -> tuple[T, int]:
    """Execute ``call`` with a fixed delay between attempts.

    ``call`` receives the zero-based attempt index. Non-retryable failures are
    raised immediately; retryable ones are retried until ``max_retries`` extra
    attempts have been used, after which a :class:`TerminalServiceFailure`
    wrapping the last failure is raised.

    Returns:
        The call result and the number of attempts made.
    """
    attempts = max_retries + 1
    for attempt in range(first_attempt, max(attempts, first_attempt + 1)):
        try:
            return await call(attempt), attempt + 1
        except Exception as exc:
            failure = classify(exc)
            failure.attempts = attempt + 1
            logfire.warning(
                "Suggestion attempt failed",
                attempt=attempt + 1,
                max_attempts=attempts,
                failure=failure.__class__.__name__,
                error=str(exc),
            )
            if not failure.retryable:
                if failure is exc:
                    raise
                raise failure from exc
            if attempt + 1 >= attempts:
                raise _exhausted(failure, attempt + 1) from exc
            logfire.warning(
                "Retrying suggestion request", attempt=attempt + 1, backoff_delay=delay
            )
            await asyncio.sleep(delay)
    raise RuntimeError("Unreachable retry state")


__all__ = ["TimeoutRace", "classify", "with_retry"]
