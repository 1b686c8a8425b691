# SPDX-License-Identifier: MIT
"""Logfire setup for the suggestion queue process."""

from __future__ import annotations

import os
from typing import Literal, get_args

import logfire

LogLevel = Literal["fatal", "error", "warn", "notice", "info", "debug", "trace"]
# Ordered from quietest to most verbose.
LOG_LEVELS: tuple[LogLevel, ...] = get_args(LogLevel)


def resolve_level(configured: str, adjustment: int = 0) -> LogLevel:
    """Return ``configured`` shifted by ``adjustment`` steps of verbosity.

    Unknown names fall back to ``info``; the result is clamped to the
    quietest and most verbose levels.
    """
    name = configured.lower()
    base = LOG_LEVELS.index(name) if name in LOG_LEVELS else LOG_LEVELS.index("info")
    index = max(0, min(len(LOG_LEVELS) - 1, base + adjustment))
    return LOG_LEVELS[index]


def _mask_token(value: str | None) -> str | None:
    if not value:
        return None
    return f"{value[:4]}..."


def init_logfire(token: str | None = None, min_log_level: LogLevel = "info") -> None:
    """Configure Logfire for the ``suggestion-queue`` service.

    Telemetry is exported only when a token is available, either passed in
    or read from ``SQ_LOGFIRE_TOKEN``; otherwise output stays on the console.
    Pydantic-AI and OpenAI instrumentation is enabled when the installed
    Logfire release provides it.
    """
    key = token or os.getenv("SQ_LOGFIRE_TOKEN")
    logfire.debug("Configuring logfire", token=_mask_token(key))
    logfire.configure(
        token=key,
        send_to_logfire="if-token-present",
        service_name="suggestion-queue",
        console=logfire.ConsoleOptions(
            min_log_level=min_log_level,
            show_project_link=False,
            verbose=True,
        ),
        min_level=min_log_level,
    )
    for name in ("instrument_pydantic_ai", "instrument_openai"):
        instrument = getattr(logfire, name, None)
        if instrument:
            instrument()
