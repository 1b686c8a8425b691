# SPDX-License-Identifier: MIT
"""Command-line interface for the suggestion queue."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import os
import platform
import signal
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Callable, Coroutine

import logfire

from dispatch import Engine, InMemoryChannelRegistry
from dispatch.channels import Listener
from dispatch.models import ERROR, QUEUED, payload
from llm import SuggestionClient
from observability import init_logfire, resolve_level
from runtime.environment import RuntimeEnv
from runtime.settings import Settings, load_settings
from sessions import JsonSessionStore

# Module logger for CLI diagnostics mirroring
logger = logging.getLogger(__name__)

PACKAGE_NAME = "suggestion-queue"


def _print_version() -> None:
    """Print the installed package version."""
    try:
        pkg_version = version(PACKAGE_NAME)
    except PackageNotFoundError:  # pragma: no cover - fallback for editable installs
        pkg_version = "unknown"
    line = f"{PACKAGE_NAME} {pkg_version}"
    print(line)
    logger.info(line)


def _print_diagnostics() -> None:
    """Output basic environment information for health checks."""
    _print_version()
    print(f"Python {platform.python_version()}")
    print(f"Platform {platform.platform()}")
    if os.getenv("SQ_API_KEY"):
        print("Required env vars present")
    else:
        print("Missing env vars: SQ_API_KEY")


def _configure_logging(args: argparse.Namespace, settings: Settings) -> None:
    """Configure Logfire from the configured level and verbosity flags."""
    level = resolve_level(settings.log_level, args.verbose - args.quiet)
    init_logfire(settings.logfire_token, level)


def _print_event(channel_id: str, event: str, data: dict[str, Any]) -> None:
    print(json.dumps({"channel": channel_id, "event": event, "data": data}))


def _listener(channel_id: str, failures: list[str]) -> Listener:
    def _on_event(event: str, data: dict[str, Any]) -> None:
        _print_event(channel_id, event, data)
        if event == ERROR:
            failures.append(channel_id)

    return _on_event


async def _cmd_submit(args: argparse.Namespace, settings: Settings) -> int:
    """Submit each file as its own channel and wait for every result."""
    channels = InMemoryChannelRegistry()
    engine = Engine.from_settings(settings, channels)
    RuntimeEnv.instance().engine = engine
    failures: list[str] = []
    engine.start()
    try:
        for index, name in enumerate(args.files, start=1):
            path = Path(name)
            channel_id = f"{index}:{path.name}"
            channels.connect(channel_id, _listener(channel_id, failures))
            try:
                code = path.read_text(encoding="utf-8")
            except OSError as exc:
                logfire.error("Cannot read input file", path=str(path), error=str(exc))
                failures.append(channel_id)
                continue
            result = await engine.queue.enqueue(args.user, channel_id, code)
            _print_event(channel_id, QUEUED, payload(result))
        await engine.queue.wait_idle()
    finally:
        await engine.stop()
    logfire.info(
        "Submission finished",
        files=len(args.files),
        failed=len(failures),
    )
    return 1 if failures else 0


def _cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    """Print the suggestion client configuration summary."""
    summary = SuggestionClient.from_settings(settings).config_summary()
    print(summary.model_dump_json(by_alias=True, indent=2))
    return 0


def _cmd_sessions_cleanup(args: argparse.Namespace, settings: Settings) -> int:
    """Drop sessions idle for longer than the configured limit."""
    store = JsonSessionStore(settings.session_file)
    minutes = args.max_inactive or settings.session_max_inactive_minutes
    removed = store.cleanup_expired(minutes)
    print(f"Removed {removed} expired session(s)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Return the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog=PACKAGE_NAME,
        description="Queue code snippets for suggestions from a model service",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit.")
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Print environment diagnostics and exit.",
    )
    parser.add_argument(
        "--config", type=str, default=None, help="Path to YAML configuration file"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log verbosity."
    )
    parser.add_argument(
        "-q", "--quiet", action="count", default=0, help="Decrease log verbosity."
    )
    subparsers = parser.add_subparsers(dest="command")

    config = subparsers.add_parser("config", help="Show suggestion client settings")
    config.set_defaults(func=_cmd_config)

    submit = subparsers.add_parser(
        "submit",
        help="Queue files for suggestions and print every event",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    submit.add_argument("files", nargs="+", help="Source files to submit in order")
    submit.add_argument("--user", default="cli", help="User id recorded on each item")
    submit.set_defaults(func=_cmd_submit)

    sessions = subparsers.add_parser("sessions", help="Manage stored sessions")
    session_commands = sessions.add_subparsers(dest="sessions_command", required=True)
    cleanup = session_commands.add_parser("cleanup", help="Remove expired sessions")
    cleanup.add_argument(
        "--max-inactive",
        type=int,
        default=None,
        help="Idle minutes before expiry (defaults to the configured value)",
    )
    cleanup.set_defaults(func=_cmd_sessions_cleanup)
    return parser


def _run_async_with_signals(coro: Coroutine[Any, Any, int]) -> int:
    """Execute ``coro`` and cancel it on SIGINT or SIGTERM."""

    async def _runner() -> int:
        loop = asyncio.get_running_loop()
        task = asyncio.create_task(coro)
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, task.cancel)
        try:
            return await task
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    return asyncio.run(_runner())


def _execute_subcommand(args: argparse.Namespace, settings: Settings) -> int:
    """Initialise runtime and dispatch to the chosen subcommand."""
    RuntimeEnv.initialize(settings)
    _configure_logging(args, settings)
    func: Callable[[argparse.Namespace, Settings], Any] = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return _run_async_with_signals(func(args, settings))
        return func(args, settings)
    finally:
        logfire.force_flush()
        RuntimeEnv.reset()


def main() -> None:
    """Parse arguments and dispatch to the requested subcommand."""
    parser = _build_parser()
    args = parser.parse_args()
    if args.version:
        _print_version()
        return
    if args.diagnostics:
        _print_diagnostics()
        return
    if args.command is None:
        parser.print_help()
        raise SystemExit(1)
    settings = load_settings(args.config)
    raise SystemExit(_execute_subcommand(args, settings))


if __name__ == "__main__":
    # Allow module to be executed as a standalone script
    main()
