from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from typing import Optional

from src.orchestration.models import LogStatus, Workflow, WorkflowLogEntry, trigger_config, trigger_from_config
from src.server.sqlite import (
    SQLiteRepository,
    format_optional_ts,
    format_ts,
    parse_optional_ts,
    parse_ts,
)

logger = logging.getLogger(__name__)


_WORKFLOWS_DDL = """
CREATE TABLE IF NOT EXISTS workflows (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    trigger_kind TEXT NOT NULL,
    trigger_config TEXT NOT NULL,
    action_ids TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_run TEXT,
    next_run TEXT,
    position INTEGER NOT NULL
);
"""

_WORKFLOW_LOGS_DDL = """
CREATE TABLE IF NOT EXISTS workflow_logs (
    id TEXT PRIMARY KEY,
    workflow_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    status TEXT NOT NULL,
    message TEXT NOT NULL,
    seq INTEGER NOT NULL
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_workflow_logs_seq ON workflow_logs(seq DESC);",
    "CREATE INDEX IF NOT EXISTS idx_workflow_logs_workflow ON workflow_logs(workflow_id, seq DESC);",
]

_WORKFLOW_COLUMNS = "id, name, description, trigger_kind, trigger_config, action_ids, enabled, last_run, next_run"
_LOG_COLUMNS = "id, workflow_id, timestamp, status, message"


class SQLiteWorkflowStore(SQLiteRepository):
    """Workflow definitions and their append-only run history."""

    async def init(self) -> None:
        await self._create_schema([_WORKFLOWS_DDL, _WORKFLOW_LOGS_DDL, *_CREATE_INDEXES])
        logger.info("Workflow database initialised at %s", self._db_path)

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_WORKFLOW_COLUMNS} FROM workflows ORDER BY position ASC",
        )
        return [_row_to_workflow(row) for row in rows]

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_WORKFLOW_COLUMNS} FROM workflows WHERE id = ?",
            (workflow_id,),
        )
        return _row_to_workflow(row) if row else None

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or update ``workflow``; new workflows are listed after existing ones."""
        params = (
            workflow.id,
            workflow.name,
            workflow.description,
            workflow.trigger.kind,
            json.dumps(trigger_config(workflow.trigger)),
            json.dumps(list(workflow.action_ids)),
            int(workflow.enabled),
            format_optional_ts(workflow.last_run),
            format_optional_ts(workflow.next_run),
        )
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO workflows ({_WORKFLOW_COLUMNS}, position)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, (SELECT COALESCE(MAX(position), 0) + 1 FROM workflows))"
                " ON CONFLICT(id) DO UPDATE SET"
                " name = excluded.name, description = excluded.description,"
                " trigger_kind = excluded.trigger_kind, trigger_config = excluded.trigger_config,"
                " action_ids = excluded.action_ids, enabled = excluded.enabled,"
                " last_run = excluded.last_run, next_run = excluded.next_run",
                params,
            )

    async def append_log(self, entry: WorkflowLogEntry) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO workflow_logs ({_LOG_COLUMNS}, seq)"
                " VALUES (?, ?, ?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM workflow_logs))",
                (entry.id, entry.workflow_id, format_ts(entry.timestamp), entry.status.value, entry.message),
            )

    async def list_logs(
        self,
        *,
        workflow_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[WorkflowLogEntry]:
        """Newest first."""
        query = f"SELECT {_LOG_COLUMNS} FROM workflow_logs"
        params: tuple = ()
        if workflow_id is not None:
            query += " WHERE workflow_id = ?"
            params = (workflow_id,)
        query += " ORDER BY seq DESC"
        if limit is not None:
            query += " LIMIT ?"
            params = (*params, limit)
        rows = await asyncio.to_thread(self._fetchall, query, params)
        return [_row_to_log(row) for row in rows]


def _row_to_workflow(row: sqlite3.Row) -> Workflow:
    return Workflow(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        trigger=trigger_from_config(row["trigger_kind"], json.loads(row["trigger_config"])),
        action_ids=tuple(json.loads(row["action_ids"])),
        enabled=bool(row["enabled"]),
        last_run=parse_optional_ts(row["last_run"]),
        next_run=parse_optional_ts(row["next_run"]),
    )


def _row_to_log(row: sqlite3.Row) -> WorkflowLogEntry:
    return WorkflowLogEntry(
        id=row["id"],
        workflow_id=row["workflow_id"],
        timestamp=parse_ts(row["timestamp"]),
        status=LogStatus(row["status"]),
        message=row["message"],
    )
