from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from src.orchestration.models import Workflow, WorkflowLogEntry, WorkflowState, describe_trigger, trigger_config
from src.orchestration.workflows import ensure_utc


class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: str
    trigger_kind: str
    trigger: dict[str, Any]
    trigger_description: str
    action_ids: list[str]
    enabled: bool
    state: str
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    @classmethod
    def from_workflow(cls, workflow: Workflow, state: WorkflowState) -> "WorkflowSummary":
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            trigger_kind=workflow.trigger.kind,
            trigger=trigger_config(workflow.trigger),
            trigger_description=describe_trigger(workflow.trigger),
            action_ids=list(workflow.action_ids),
            enabled=workflow.enabled,
            state=state.value,
            last_run=workflow.last_run,
            next_run=workflow.next_run,
        )


class WorkflowListResponse(BaseModel):
    workflows: list[WorkflowSummary]


class WorkflowUpdateRequest(BaseModel):
    enabled: bool


class WorkflowLog(BaseModel):
    id: str
    workflow_id: str
    timestamp: datetime
    status: str
    message: str

    @classmethod
    def from_entry(cls, entry: WorkflowLogEntry) -> "WorkflowLog":
        return cls(
            id=entry.id,
            workflow_id=entry.workflow_id,
            timestamp=entry.timestamp,
            status=entry.status.value,
            message=entry.message,
        )


class WorkflowLogListResponse(BaseModel):
    logs: list[WorkflowLog]


class WorkflowRunResponse(BaseModel):
    workflow: WorkflowSummary
    log: WorkflowLog
    output: str = ""


class FireRequest(BaseModel):
    next_run: Optional[datetime] = Field(
        default=None,
        description="Next occurrence computed by the scheduler, stored once the run finishes.",
    )

    @field_validator("next_run")
    @classmethod
    def normalise_next_run(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class EvaluateRequest(BaseModel):
    now: Optional[datetime] = None
    events: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)

    @field_validator("now")
    @classmethod
    def normalise_now(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class EvaluateResponse(BaseModel):
    due: list[str]
