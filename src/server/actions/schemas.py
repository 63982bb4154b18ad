from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.orchestration.catalog import ActionDescriptor
from src.orchestration.runner import BulkRun, BulkRunUpdate


class ActionSummary(BaseModel):
    id: str
    title: str
    description: str
    domain: str
    operation_type: str
    priority: str

    @classmethod
    def from_descriptor(cls, action: ActionDescriptor) -> "ActionSummary":
        return cls(
            id=action.id,
            title=action.title,
            description=action.description,
            domain=action.domain,
            operation_type=action.operation_type,
            priority=action.priority.value,
        )


class ActionListResponse(BaseModel):
    domain: str
    actions: list[ActionSummary]


class BulkRunRequest(BaseModel):
    action_ids: list[str] = Field(description="Selected action ids, executed in this order.")


class ActionResultItem(BaseModel):
    success: bool
    message: str


class BulkRunResponse(BaseModel):
    domain: str
    action_ids: list[str]
    results: dict[str, ActionResultItem]
    progress_percent: float
    success_count: int
    total: int
    outcome: Optional[str] = None
    narrative: str = ""

    @classmethod
    def from_run(cls, run: BulkRun) -> "BulkRunResponse":
        return cls(
            domain=run.domain,
            action_ids=list(run.selected_action_ids),
            results={
                action_id: ActionResultItem(success=result.success, message=result.message)
                for action_id, result in run.results.items()
            },
            progress_percent=run.progress_percent,
            success_count=run.success_count,
            total=run.total,
            outcome=run.outcome.value if run.outcome else None,
            narrative=run.narrative,
        )


class BulkRunProgress(BaseModel):
    action_id: str
    success: bool
    message: str
    completed: int
    total: int
    progress_percent: float

    @classmethod
    def from_update(cls, update: BulkRunUpdate) -> "BulkRunProgress":
        return cls(
            action_id=update.action_id,
            success=update.result.success,
            message=update.result.message,
            completed=update.completed,
            total=update.total,
            progress_percent=update.progress_percent,
        )
