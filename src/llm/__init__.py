"""Suggestion service client with timeout, retry and failure classification."""

from .errors import (
    ConfigurationFailure,
    InvalidRequestFailure,
    QuotaFailure,
    SuggestionError,
    TerminalServiceFailure,
    TimeoutFailure,
    TransientServiceFailure,
    ValidationFailure,
)
from .suggestion import Suggestion, SuggestionClient, SuggestionConfig

__all__ = [
    "ConfigurationFailure",
    "InvalidRequestFailure",
    "QuotaFailure",
    "Suggestion",
    "SuggestionClient",
    "SuggestionConfig",
    "SuggestionError",
    "TerminalServiceFailure",
    "TimeoutFailure",
    "TransientServiceFailure",
    "ValidationFailure",
]
