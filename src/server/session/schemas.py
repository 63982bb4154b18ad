from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ChatMessage(BaseModel):
    id: str
    role: str
    content: str = Field(description="Displayable prose, without any visualization block.")
    metadata: Optional[dict[str, Any]] = None
    seq: int
    created_at: datetime
    visualization: Optional[dict[str, Any]] = None
    view: Optional[dict[str, Any]] = None


class SessionSummary(BaseModel):
    id: str
    context: str
    last_message_preview: Optional[str] = None
    updated_at: datetime
    created_at: datetime


class SessionCreateRequest(BaseModel):
    context: str = Field(description="Page context the conversation belongs to, e.g. 'pricing'.")

    @field_validator("context")
    @classmethod
    def validate_context(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Context must not be empty")
        return value


class SessionCreateResponse(BaseModel):
    session: SessionSummary


class SessionListResponse(BaseModel):
    sessions: list[SessionSummary]


class MessageListResponse(BaseModel):
    session_id: str
    messages: list[ChatMessage]


class SendMessageRequest(BaseModel):
    message: str
    context: Optional[str] = Field(
        default=None,
        description="Required when the session does not exist yet.",
    )
    context_data: Optional[Any] = Field(
        default=None,
        description="Page-specific data forwarded to the assistant; never stored.",
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message must not be empty")
        return value


class SuggestionRequest(BaseModel):
    context: str
    prompt: str


class SuggestionResponse(BaseModel):
    context: str
    suggestion: str
    is_fallback: bool = False
