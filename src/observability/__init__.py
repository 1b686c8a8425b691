"""Telemetry helpers for the suggestion queue.

Exports:
    init_logfire: Configure Pydantic Logfire instrumentation.
    resolve_level: Apply ``-v``/``-q`` adjustments to a configured level.
    LOG_LEVELS: Console levels ordered from quietest to most verbose.
"""

from .monitoring import LOG_LEVELS, LogLevel, init_logfire, resolve_level

__all__ = ["LOG_LEVELS", "LogLevel", "init_logfire", "resolve_level"]
