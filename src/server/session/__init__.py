"""Conversational session package providing SQLite-backed persistence and chat APIs."""

from .store import SQLiteSessionStore

__all__ = ["SQLiteSessionStore"]
