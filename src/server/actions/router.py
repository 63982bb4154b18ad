from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from src.orchestration.catalog import actions_for, domains
from src.orchestration.errors import EmptySelection
from src.orchestration.runner import BulkActionRunner, BulkRunHandle
from src.server.dependencies import get_bulk_runner

from .schemas import (
    ActionListResponse,
    ActionSummary,
    BulkRunProgress,
    BulkRunRequest,
    BulkRunResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/actions", tags=["actions"])


def _require_domain(domain: str) -> None:
    if domain not in domains():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown domain {domain}")


@router.get("/{domain}", response_model=ActionListResponse)
async def list_actions(domain: str) -> ActionListResponse:
    _require_domain(domain)
    return ActionListResponse(
        domain=domain,
        actions=[ActionSummary.from_descriptor(action) for action in actions_for(domain)],
    )


@router.post("/{domain}/run", response_model=BulkRunResponse)
async def run_actions(
    domain: str,
    payload: BulkRunRequest,
    runner: BulkActionRunner = Depends(get_bulk_runner),
) -> BulkRunResponse:
    _require_domain(domain)
    try:
        run = await runner.run(payload.action_ids, domain)
    except EmptySelection as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BulkRunResponse.from_run(run)


@router.post("/{domain}/run/stream")
async def stream_actions(
    domain: str,
    payload: BulkRunRequest,
    runner: BulkActionRunner = Depends(get_bulk_runner),
) -> StreamingResponse:
    _require_domain(domain)
    try:
        handle = runner.start(payload.action_ids, domain)
    except EmptySelection as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return StreamingResponse(_stream_run(handle), media_type="text/event-stream")


async def _stream_run(handle: BulkRunHandle) -> AsyncIterator[str]:
    async for update in handle.updates():
        yield _make_event("progress", BulkRunProgress.from_update(update).model_dump())
    run = await handle.wait()
    yield _make_event("complete", BulkRunResponse.from_run(run).model_dump())


def _make_event(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"
