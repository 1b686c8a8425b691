"""Session persistence for authenticated channels."""

from .store import JsonSessionStore, Session

__all__ = ["JsonSessionStore", "Session"]
