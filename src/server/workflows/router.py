from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.orchestration.errors import UnknownWorkflow, WorkflowBusy
from src.orchestration.workflows import TriggerSnapshot, WorkflowEngine, WorkflowRun
from src.server.dependencies import get_workflow_engine

from .schemas import (
    EvaluateRequest,
    EvaluateResponse,
    FireRequest,
    WorkflowListResponse,
    WorkflowLog,
    WorkflowLogListResponse,
    WorkflowRunResponse,
    WorkflowSummary,
    WorkflowUpdateRequest,
)

router = APIRouter(prefix="/api/workflows", tags=["workflows"])


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(engine: WorkflowEngine = Depends(get_workflow_engine)) -> WorkflowListResponse:
    workflows = await engine.list_workflows()
    return WorkflowListResponse(
        workflows=[WorkflowSummary.from_workflow(workflow, engine.state_of(workflow)) for workflow in workflows]
    )


@router.get("/logs", response_model=WorkflowLogListResponse)
async def list_logs(
    workflow_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> WorkflowLogListResponse:
    entries = await engine.logs(workflow_id, limit=limit)
    return WorkflowLogListResponse(logs=[WorkflowLog.from_entry(entry) for entry in entries])


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(
    payload: EvaluateRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> EvaluateResponse:
    snapshot = TriggerSnapshot(
        now=payload.now or datetime.now(timezone.utc),
        events=frozenset(payload.events),
        metrics=payload.metrics,
    )
    return EvaluateResponse(due=await engine.evaluate(snapshot))


@router.patch("/{workflow_id}", response_model=WorkflowSummary)
async def update_workflow(
    workflow_id: str,
    payload: WorkflowUpdateRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> WorkflowSummary:
    try:
        workflow = await engine.set_enabled(workflow_id, payload.enabled)
    except UnknownWorkflow as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found") from exc
    return WorkflowSummary.from_workflow(workflow, engine.state_of(workflow))


@router.post("/{workflow_id}/run", response_model=WorkflowRunResponse)
async def run_workflow(
    workflow_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> WorkflowRunResponse:
    try:
        result = await engine.run_now(workflow_id)
    except UnknownWorkflow as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found") from exc
    except WorkflowBusy as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_run_response(engine, result)


@router.post("/{workflow_id}/fire", response_model=WorkflowRunResponse)
async def fire_workflow(
    workflow_id: str,
    payload: FireRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> WorkflowRunResponse:
    try:
        result = await engine.fire(workflow_id, next_run=payload.next_run)
    except UnknownWorkflow as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workflow not found") from exc
    return _to_run_response(engine, result)


def _to_run_response(engine: WorkflowEngine, result: WorkflowRun) -> WorkflowRunResponse:
    return WorkflowRunResponse(
        workflow=WorkflowSummary.from_workflow(result.workflow, engine.state_of(result.workflow)),
        log=WorkflowLog.from_entry(result.entry),
        output=result.output,
    )
