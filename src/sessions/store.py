# SPDX-License-Identifier: MIT
"""Flat JSON session store keyed by opaque token.

The backing file holds ``{"sessions": {token: {...}}}`` alongside any other
top-level keys, which are preserved on write. Every update rewrites the file
atomically so a crash never leaves a truncated document behind.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import logfire
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import from_json, to_json


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Authenticated session bound to at most one channel."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    user_id: str
    username: str | None = None
    channel_id: str | None = Field(None, alias="socketId")
    created_at: datetime = Field(default_factory=_now)
    last_activity: datetime = Field(default_factory=_now)


def _atomic_write_json(path: Path, document: dict[str, Any]) -> None:
    """Replace ``path`` with ``document`` via a synced temporary file."""
    with logfire.span("sessions.write", attributes={"path": str(path)}):
        tmp_path = Path(f"{path}.tmp")
        tmp_path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "wb") as handle:
            handle.write(to_json(document, indent=2))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)


class JsonSessionStore:
    """Session persistence backed by a single JSON document."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            document = from_json(self.path.read_bytes())
        except FileNotFoundError:
            return {"sessions": {}}
        except ValueError as exc:
            raise RuntimeError(f"Invalid session file {self.path}: {exc}") from exc
        if not isinstance(document, dict):
            raise RuntimeError(f"Invalid session file {self.path}: expected object")
        sessions = document.setdefault("sessions", {})
        if not isinstance(sessions, dict):
            raise RuntimeError(f"Invalid session file {self.path}: bad sessions entry")
        return document

    def _session(self, document: dict[str, Any], token: str) -> Session | None:
        raw = document["sessions"].get(token)
        if raw is None:
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError as exc:
            logfire.warning("Skipping malformed session", error=str(exc))
            return None

    def _save(
        self, document: dict[str, Any], changes: dict[str, Session | None]
    ) -> None:
        """Write ``changes`` into ``document``; ``None`` deletes the token.

        Entries not named in ``changes`` keep their stored form, including
        records this model cannot parse.
        """
        sessions = document["sessions"]
        for token, session in changes.items():
            if session is None:
                sessions.pop(token, None)
            else:
                sessions[token] = session.model_dump(mode="json", by_alias=True)
        _atomic_write_json(self.path, document)

    def create(self, user_id: str, username: str | None = None) -> str:
        """Open a session for ``user_id`` and return its token."""
        document = self._load()
        token = str(uuid4())
        self._save(document, {token: Session(user_id=user_id, username=username)})
        logfire.info("Session created", user_id=user_id)
        return token

    def get(self, token: str) -> Session | None:
        """Return the session for ``token`` without touching it."""
        if not token:
            return None
        return self._session(self._load(), token)

    def validate(self, token: str, channel_id: str) -> Session | None:
        """Bind ``channel_id`` to the session for ``token`` and refresh it.

        Returns ``None`` for unknown tokens or an unreadable store.
        """
        if not token:
            return None
        try:
            document = self._load()
        except RuntimeError as exc:
            logfire.error("Session validation failed", error=str(exc))
            return None
        session = self._session(document, token)
        if session is None:
            logfire.info("Session not found")
            return None
        session.channel_id = channel_id
        session.last_activity = _now()
        self._save(document, {token: session})
        logfire.info(
            "Session validated", user_id=session.user_id, channel_id=channel_id
        )
        return session

    def touch(self, token: str) -> bool:
        """Refresh the activity timestamp of ``token``."""
        document = self._load()
        session = self._session(document, token)
        if session is None:
            return False
        session.last_activity = _now()
        self._save(document, {token: session})
        return True

    def remove(self, token: str) -> bool:
        """Delete the session for ``token``.

        An unreadable store is logged and reported as nothing removed.
        """
        if not token:
            return False
        try:
            document = self._load()
        except RuntimeError as exc:
            logfire.error("Session removal failed", error=str(exc))
            return False
        if token not in document["sessions"]:
            return False
        session = self._session(document, token)
        self._save(document, {token: None})
        logfire.info(
            "Session removed", user_id=session.user_id if session else None
        )
        return True

    def cleanup_expired(self, max_inactive_minutes: int = 60) -> int:
        """Drop sessions idle for longer than ``max_inactive_minutes``."""
        document = self._load()
        cutoff = _now() - timedelta(minutes=max_inactive_minutes)
        expired: dict[str, Session | None] = {}
        for token in list(document["sessions"]):
            session = self._session(document, token)
            if session is not None and session.last_activity < cutoff:
                logfire.info("Expired session removed", user_id=session.user_id)
                expired[token] = None
        if expired:
            self._save(document, expired)
        return len(expired)


__all__ = ["JsonSessionStore", "Session"]
