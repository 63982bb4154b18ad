from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from typing import Optional, Sequence
from uuid import uuid4

from src.orchestration.models import MessageRecord, PendingMessage, SessionRecord
from src.server.sqlite import SQLiteRepository, ensure_pragmas, format_ts, parse_ts, utc_now

logger = logging.getLogger(__name__)


_SESSIONS_DDL = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    context TEXT NOT NULL,
    last_message_preview TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT,
    seq INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_sessions_updated ON sessions(updated_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_messages_session_seq ON messages(session_id, seq);",
]

_MESSAGE_COLUMNS = "id, session_id, role, content, metadata, seq, created_at"
_SESSION_COLUMNS = "id, context, last_message_preview, created_at, updated_at"


class SQLiteSessionStore(SQLiteRepository):
    """SQLite-backed message log for conversational sessions.

    Messages are appended in batches inside one transaction, so a user message
    and the assistant reply become visible together or not at all.
    """

    async def init(self) -> None:
        """Initialise database schema."""
        await self._create_schema([_SESSIONS_DDL, _MESSAGES_DDL, *_CREATE_INDEXES])
        logger.info("Session database initialised at %s", self._db_path)

    async def ensure_session(self, session_id: str, context: str) -> SessionRecord:
        """Return the session, creating it on first use."""
        existing = await self.get_session(session_id)
        if existing is not None:
            return existing

        now = format_ts(utc_now())
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                "INSERT OR IGNORE INTO sessions (id, context, last_message_preview, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (session_id, context, None, now, now),
            )
        session = await self.get_session(session_id)
        if session is None:
            raise RuntimeError(f"Session {session_id} could not be created")
        logger.debug("Created session %s (%s)", session_id, context)
        return session

    async def list_sessions(self, *, context: Optional[str] = None) -> list[SessionRecord]:
        if context is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_SESSION_COLUMNS} FROM sessions ORDER BY updated_at DESC",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE context = ? ORDER BY updated_at DESC",
                (context,),
            )
        return [_row_to_session(row) for row in rows]

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?",
            (session_id,),
        )
        return _row_to_session(row) if row else None

    async def get_messages(self, session_id: str, *, limit: Optional[int] = None) -> list[MessageRecord]:
        """Return the log ordered by creation time; ``limit`` keeps the newest entries."""
        if limit is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE session_id = ? ORDER BY created_at ASC, seq ASC",
                (session_id,),
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_MESSAGE_COLUMNS} FROM ("
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE session_id = ? "
                "ORDER BY created_at DESC, seq DESC LIMIT ?"
                ") ORDER BY created_at ASC, seq ASC",
                (session_id, limit),
            )
        return [_row_to_message(row) for row in rows]

    async def append_messages(self, session_id: str, entries: Sequence[PendingMessage]) -> list[MessageRecord]:
        """Atomically append ``entries`` to the session log, in order."""
        if not entries:
            return []
        prepared = [
            (uuid4().hex, entry, json.dumps(entry.metadata) if entry.metadata else None, format_ts(entry.created_at))
            for entry in entries
        ]
        now = format_ts(utc_now())

        async with self._write_lock:

            def _insert() -> int:
                with sqlite3.connect(self._db_path) as connection:
                    connection.row_factory = sqlite3.Row
                    ensure_pragmas(connection)

                    cursor = connection.execute(
                        "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                        (session_id,),
                    )
                    row = cursor.fetchone()
                    first_seq = int(row["max_seq"] or 0) + 1

                    for offset, (message_id, entry, metadata_json, created_at) in enumerate(prepared):
                        connection.execute(
                            f"INSERT INTO messages ({_MESSAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                            (
                                message_id,
                                session_id,
                                entry.role,
                                entry.content,
                                metadata_json,
                                first_seq + offset,
                                created_at,
                            ),
                        )
                    preview = entries[-1].content[:200]
                    connection.execute(
                        "UPDATE sessions SET updated_at = ?, last_message_preview = ? WHERE id = ?",
                        (now, preview, session_id),
                    )
                    connection.commit()
                    return first_seq

            first_seq = await asyncio.to_thread(_insert)

        return [
            MessageRecord(
                id=message_id,
                session_id=session_id,
                role=entry.role,
                content=entry.content,
                metadata=json.loads(metadata_json) if metadata_json else None,
                seq=first_seq + offset,
                created_at=parse_ts(created_at),
            )
            for offset, (message_id, entry, metadata_json, created_at) in enumerate(prepared)
        ]


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        context=row["context"],
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
        last_message_preview=row["last_message_preview"],
    )


def _row_to_message(row: sqlite3.Row) -> MessageRecord:
    return MessageRecord(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        seq=row["seq"],
        created_at=parse_ts(row["created_at"]),
    )
