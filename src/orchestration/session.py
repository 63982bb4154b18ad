from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, Sequence

from src.llms.llm import AIInvoker

from .errors import Busy, SendFailed, Unavailable
from .models import MessageRecord, PendingMessage, SessionRecord
from .notifications import NotificationChannel
from .prompts import SUGGESTION_PROMPT, build_system_prompt, is_scenario_question, suggested_questions
from .read_models import ReadModels
from .visualization import VisualizationPayload, View, render, split

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


class MessageLog(Protocol):
    async def ensure_session(self, session_id: str, context: str) -> SessionRecord: ...

    async def list_sessions(self, *, context: Optional[str] = None) -> list[SessionRecord]: ...

    async def get_messages(self, session_id: str, *, limit: Optional[int] = None) -> list[MessageRecord]: ...

    async def append_messages(self, session_id: str, entries: Sequence[PendingMessage]) -> list[MessageRecord]: ...


@dataclass(slots=True, frozen=True)
class PresentedMessage:
    message: MessageRecord
    prose: str
    payload: Optional[VisualizationPayload]
    view: Optional[View]


@dataclass(slots=True, frozen=True)
class Suggestion:
    context: str
    text: str
    is_fallback: bool = False


def new_session_id(context: str, now: Optional[float] = None) -> str:
    """Derive an opaque session token from the context and the creation time."""
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{context}-{millis}"


def present(message: MessageRecord) -> PresentedMessage:
    """Re-extract the displayable prose and visualization of a stored message."""
    if message.role != "assistant":
        return PresentedMessage(message=message, prose=message.content, payload=None, view=None)
    result = split(message.content)
    return PresentedMessage(message=message, prose=result.prose, payload=result.payload, view=render(result.payload))


class ConversationService:
    """Turn-taking contract between the operator and the assistant.

    At most one ``send`` per session may be in flight; a concurrent one is
    rejected with :class:`Busy`. The user message and the assistant reply are
    committed to the log together, only after the AI collaborator answered.
    Once started, a send runs to completion even if the caller stops waiting.
    """

    def __init__(
        self,
        invoker: AIInvoker,
        log: MessageLog,
        read_models: ReadModels,
        notifications: NotificationChannel,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._invoker = invoker
        self._log = log
        self._read_models = read_models
        self._notifications = notifications
        self._history_limit = history_limit
        self._clock = clock
        self._pending: set[str] = set()

    def is_pending(self, session_id: str) -> bool:
        return session_id in self._pending

    async def send(
        self,
        session_id: str,
        context: str,
        message: str,
        context_data: Optional[Any] = None,
    ) -> MessageRecord:
        text = message.strip()
        if not text:
            raise ValueError("message must not be empty")
        if session_id in self._pending:
            logger.info("Rejecting concurrent send for session %s", session_id)
            self._notifications.error("Please wait for the current response", source="chat")
            raise Busy(session_id)

        self._pending.add(session_id)
        task = asyncio.ensure_future(self._send(session_id, context, text, context_data))
        return await asyncio.shield(task)

    async def _send(self, session_id: str, context: str, text: str, context_data: Optional[Any]) -> MessageRecord:
        try:
            started_at = self._clock()
            await self._log.ensure_session(session_id, context)
            history = await self._log.get_messages(session_id, limit=self._history_limit)
            business_context = await self._read_models.business_context()

            reply = await self._invoker.invoke(
                context,
                text,
                context_data,
                system_prompt=build_system_prompt(context, business_context, text),
                history=[(entry.role, entry.content) for entry in history],
            )
            records = await self._log.append_messages(
                session_id,
                [
                    PendingMessage(role="user", content=text, created_at=started_at, metadata={"context": context}),
                    PendingMessage(
                        role="assistant",
                        content=reply,
                        created_at=self._clock(),
                        metadata={"context": context, "scenario": is_scenario_question(text)},
                    ),
                ],
            )
        except Unavailable as exc:
            self._notifications.error(str(exc) or "Failed to get AI response", source="chat")
            raise SendFailed(session_id, exc) from exc
        except Exception as exc:  # noqa: BLE001 - the caller only ever sees SendFailed
            logger.exception("Send failed for session %s", session_id)
            self._notifications.error("Failed to get AI response", source="chat")
            raise SendFailed(session_id, exc) from exc
        finally:
            self._pending.discard(session_id)

        logger.info("Session %s: recorded exchange (%d chars reply)", session_id, len(reply))
        self._notifications.success("AI response received", source="chat")
        return records[-1]

    async def history(self, session_id: str) -> list[MessageRecord]:
        return await self._log.get_messages(session_id)

    async def sessions(self, context: Optional[str] = None) -> list[SessionRecord]:
        return await self._log.list_sessions(context=context)

    async def suggest(self, context: str, prompt: str) -> Suggestion:
        """Quick inline suggestion. A canned hint is returned, and labelled as such, when the AI fails."""
        try:
            text = await self._invoker.invoke(
                context,
                prompt,
                system_prompt=SUGGESTION_PROMPT.format(context=context),
            )
        except Unavailable as exc:
            logger.warning("Falling back to canned suggestion for %s: %s", context, exc)
            self._notifications.warning("AI suggestion unavailable; showing a standard hint", source="chat")
            return Suggestion(context=context, text=suggested_questions(context)[0], is_fallback=True)
        return Suggestion(context=context, text=text.strip())
