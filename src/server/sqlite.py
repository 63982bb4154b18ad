from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute("PRAGMA journal_mode = WAL;")


def resolve_db_path(db_path: str) -> str:
    path = Path(db_path)
    if path.name == ":memory:":
        return db_path
    if not path.is_absolute():
        path = Path.cwd() / path
    if path.suffix != ".db":
        path = path.with_suffix(".db")
    return str(path)


class SQLiteRepository:
    """Shared plumbing: one connection per call, run off the event loop, one writer at a time."""

    def __init__(self, db_path: str) -> None:
        self._db_path = resolve_db_path(db_path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def _create_schema(self, statements: list[str]) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        def _init() -> None:
            with sqlite3.connect(self._db_path) as connection:
                ensure_pragmas(connection)
                for statement in statements:
                    connection.execute(statement)
                connection.commit()

        await asyncio.to_thread(_init)

    async def close(self) -> None:  # pragma: no cover - compatibility placeholder
        return None

    def _execute(self, query: str, params: tuple = ()) -> None:
        with sqlite3.connect(self._db_path) as connection:
            ensure_pragmas(connection)
            connection.execute(query, params)
            connection.commit()

    def _fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchall()

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchone()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds") + "Z"


def parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1]
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def parse_optional_ts(value: Optional[str]) -> Optional[datetime]:
    return parse_ts(value) if value else None


def format_optional_ts(value: Optional[datetime]) -> Optional[str]:
    return format_ts(value) if value is not None else None
