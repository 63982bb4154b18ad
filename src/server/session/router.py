from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.orchestration.errors import Busy, SendFailed
from src.orchestration.models import MessageRecord, SessionRecord
from src.orchestration.session import ConversationService, new_session_id, present
from src.server.dependencies import get_conversation_service, get_session_store

from .schemas import (
    ChatMessage,
    MessageListResponse,
    SendMessageRequest,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionListResponse,
    SessionSummary,
    SuggestionRequest,
    SuggestionResponse,
)
from .store import SQLiteSessionStore

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    context: Optional[str] = Query(default=None, description="Only sessions of this page context."),
    service: ConversationService = Depends(get_conversation_service),
) -> SessionListResponse:
    records = await service.sessions(context)
    return SessionListResponse(sessions=[_to_summary(record) for record in records])


@router.post("/sessions", status_code=status.HTTP_201_CREATED, response_model=SessionCreateResponse)
async def create_session(
    payload: SessionCreateRequest,
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionCreateResponse:
    session = await store.ensure_session(new_session_id(payload.context), payload.context)
    return SessionCreateResponse(session=_to_summary(session))


@router.get("/sessions/{session_id}/messages", response_model=MessageListResponse)
async def get_messages(
    session_id: str,
    store: SQLiteSessionStore = Depends(get_session_store),
    service: ConversationService = Depends(get_conversation_service),
) -> MessageListResponse:
    if await store.get_session(session_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    messages = await service.history(session_id)
    return MessageListResponse(session_id=session_id, messages=[_to_message(message) for message in messages])


@router.post("/sessions/{session_id}/messages", response_model=ChatMessage)
async def send_message(
    session_id: str,
    payload: SendMessageRequest,
    store: SQLiteSessionStore = Depends(get_session_store),
    service: ConversationService = Depends(get_conversation_service),
) -> ChatMessage:
    context = payload.context
    if context is None:
        session = await store.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        context = session.context

    try:
        reply = await service.send(session_id, context, payload.message, payload.context_data)
    except Busy as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SendFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _to_message(reply)


@router.post("/suggestion", response_model=SuggestionResponse)
async def suggest(
    payload: SuggestionRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> SuggestionResponse:
    suggestion = await service.suggest(payload.context, payload.prompt)
    return SuggestionResponse(
        context=suggestion.context,
        suggestion=suggestion.text,
        is_fallback=suggestion.is_fallback,
    )


def _to_summary(record: SessionRecord) -> SessionSummary:
    return SessionSummary(
        id=record.id,
        context=record.context,
        last_message_preview=record.last_message_preview,
        updated_at=record.updated_at,
        created_at=record.created_at,
    )


def _to_message(record: MessageRecord) -> ChatMessage:
    presented = present(record)
    return ChatMessage(
        id=record.id,
        role=record.role,
        content=presented.prose,
        metadata=record.metadata,
        seq=record.seq,
        created_at=record.created_at,
        visualization=presented.payload.model_dump() if presented.payload else None,
        view=presented.view.model_dump() if presented.view else None,
    )
