# SPDX-License-Identifier: MIT
"""Failure taxonomy for suggestion requests.

Every failure raised by :class:`llm.suggestion.SuggestionClient` derives from
:class:`SuggestionError`. ``retryable`` marks the transient classes that share
the retry budget; the remaining classes are surfaced on first occurrence.
"""

from __future__ import annotations


class SuggestionError(Exception):
    """Base class for classified suggestion failures."""

    retryable: bool = False

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class ValidationFailure(SuggestionError):
    """Submitted code is empty or longer than the configured maximum."""


class ConfigurationFailure(SuggestionError):
    """Credential missing, rejected or lacking permission."""


class QuotaFailure(SuggestionError):
    """Quota exhausted or rate limit hit for this call."""


class InvalidRequestFailure(SuggestionError):
    """The service rejected the request as malformed."""


class TimeoutFailure(SuggestionError):
    """A single attempt exceeded the request timeout."""

    retryable = True


class TransientServiceFailure(SuggestionError):
    """Any other service failure, including empty responses."""

    retryable = True


class TerminalServiceFailure(SuggestionError):
    """Retry budget exhausted on a transient failure."""

    last_failure: SuggestionError | None = None


__all__ = [
    "ConfigurationFailure",
    "InvalidRequestFailure",
    "QuotaFailure",
    "SuggestionError",
    "TerminalServiceFailure",
    "TimeoutFailure",
    "TransientServiceFailure",
    "ValidationFailure",
]
