# SPDX-License-Identifier: MIT
"""Centralised application configuration management.

This module exposes :class:`Settings`, a ``pydantic-settings`` model that
combines values sourced from a YAML configuration file and environment
variables. Environment variables (including those in a ``.env`` file) take
precedence over file-based values and the merged configuration is validated
before use.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import logfire
import yaml
from dotenv import dotenv_values
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils import ErrorHandler, LoggingErrorHandler

ENV_PREFIX = "SQ_"
DEFAULT_CONFIG_PATH = Path("config/app.yaml")


class Settings(BaseSettings):
    """Application settings combining file-based and environment configuration."""

    model: str = Field(
        "openai:gpt-4o-mini",
        min_length=1,
        description="Suggestion model in '<provider>:<model>' format.",
    )
    api_key: str | None = Field(
        None, description="Suggestion service credential.", repr=False
    )
    log_level: str = Field("info", description="Logging verbosity level.")
    logfire_token: str | None = Field(
        None, description="Logfire authentication token, if available.", repr=False
    )
    request_timeout: float = Field(
        30.0, gt=0, description="Per-attempt timeout in seconds."
    )
    max_retries: int = Field(
        2, ge=0, description="Extra attempts allowed for transient failures."
    )
    retry_delay: float = Field(
        1.0, ge=0, description="Fixed delay between attempts in seconds."
    )
    max_input_length: int = Field(
        10_000, ge=1, description="Maximum accepted code length in characters."
    )
    seconds_per_item: int = Field(
        3, ge=0, description="Seconds of estimated wait per queue position."
    )
    redispatch_delay: float = Field(
        0.1, ge=0, description="Pause before dispatching the next queued item."
    )
    session_file: Path = Field(
        Path("data/sessions.json"), description="JSON session store location."
    )
    session_max_inactive_minutes: int = Field(
        60, ge=1, description="Idle minutes before a session expires."
    )

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")


def _read_config_file(
    path: Path, required: bool, error_handler: ErrorHandler | None = None
) -> dict[str, Any]:
    """Return the mapping stored in the YAML file at ``path``."""
    handler = error_handler or LoggingErrorHandler()
    with logfire.span("settings.read_config", attributes={"path": str(path)}):
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            if required:
                handler.handle(f"Configuration file not found: {path}", exc)
                raise RuntimeError(f"Configuration file not found: {path}") from exc
            return {}
        except (OSError, yaml.YAMLError) as exc:
            handler.handle(f"Error reading YAML file {path}", exc)
            raise RuntimeError(
                f"An error occurred while reading the YAML file: {exc}"
            ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Configuration file {path} must contain a mapping")
    return data


def _env_overrides(env_file: Path | None) -> set[str]:
    """Return lower-cased setting names provided through the environment."""
    names = {key for key in os.environ}
    if env_file is not None:
        names.update(dotenv_values(env_file))
    prefix = ENV_PREFIX.lower()
    return {
        name.lower()[len(prefix) :]
        for name in names
        if name.lower().startswith(prefix)
    }


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load and validate application settings.

    Values are read from the YAML configuration file (``config/app.yaml`` by
    default; a missing default file is ignored) and merged with environment
    variables using ``pydantic-settings``. When a value is provided in both
    sources the environment variable wins. A ``.env`` file in the working
    directory is loaded automatically when present.

    Args:
        config_path: Optional path to a YAML configuration file. Unlike the
            default location it must exist.

    Returns:
        Settings: Fully validated application configuration.

    Raises:
        RuntimeError: If the file cannot be read or values are invalid.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    file_values = _read_config_file(path, required=config_path is not None)
    env_file_path = Path(".env")
    env_file = env_file_path if env_file_path.exists() else None
    overridden = _env_overrides(env_file)
    values = {
        key: value for key, value in file_values.items() if key not in overridden
    }
    try:
        return Settings(**values, _env_file=env_file)
    except ValidationError as exc:
        # Summarise validation issues so the caller receives clear feedback.
        details = "; ".join(
            f"{'.'.join(map(str, error['loc']))}: {error['msg']}"
            for error in exc.errors()
        )
        raise RuntimeError(f"Invalid configuration: {details}") from exc


__all__ = ["DEFAULT_CONFIG_PATH", "ENV_PREFIX", "Settings", "load_settings"]
