from __future__ import annotations

import asyncio
import json
import logging
from functools import lru_cache
from typing import Any, Optional, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from src.config.loader import get_float_env, get_str_env
from src.orchestration.errors import Unavailable

logger = logging.getLogger(__name__)

HistoryItem = tuple[str, str]


class AIInvoker(Protocol):
    async def invoke(
        self,
        context: str,
        prompt: str,
        context_data: Optional[Any] = None,
        *,
        system_prompt: Optional[str] = None,
        history: Sequence[HistoryItem] = (),
    ) -> str: ...


class ChatModelInvoker:
    """Adapts a LangChain chat model to the ``invoke(context, prompt) -> text`` contract.

    Any failure of the model call, including an empty answer or the optional
    timeout, is reported as :class:`Unavailable`.
    """

    def __init__(self, llm: BaseChatModel, *, timeout: Optional[float] = None) -> None:
        self._llm = llm
        self._timeout = timeout

    async def invoke(
        self,
        context: str,
        prompt: str,
        context_data: Optional[Any] = None,
        *,
        system_prompt: Optional[str] = None,
        history: Sequence[HistoryItem] = (),
    ) -> str:
        messages = build_messages(prompt, context_data, system_prompt=system_prompt, history=history)
        try:
            call = self._llm.ainvoke(messages)
            result = await asyncio.wait_for(call, self._timeout) if self._timeout else await call
        except Exception as exc:  # noqa: BLE001 - every model error maps to Unavailable
            logger.warning("AI invocation failed for context %s: %s", context, exc)
            raise Unavailable(f"AI service unavailable: {exc}") from exc

        content = stringify_content(getattr(result, "content", result))
        if not content.strip():
            logger.warning("AI invocation for context %s returned an empty answer", context)
            raise Unavailable("AI service returned an empty response")
        return content


def build_messages(
    prompt: str,
    context_data: Optional[Any] = None,
    *,
    system_prompt: Optional[str] = None,
    history: Sequence[HistoryItem] = (),
) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    for role, content in history:
        if role == "user":
            messages.append(HumanMessage(content=content))
        elif role == "assistant":
            messages.append(AIMessage(content=content))
    if context_data is not None:
        prompt = f"{prompt}\n\nPage-specific data: {serialize_context_data(context_data)}"
    messages.append(HumanMessage(content=prompt))
    return messages


def serialize_context_data(context_data: Any) -> str:
    if isinstance(context_data, str):
        return context_data
    try:
        return json.dumps(context_data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(context_data)


def stringify_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                parts.append(str(item["text"]))
        return "".join(parts)
    return "" if content is None else str(content)


def get_llm_by_type(llm_type: str = "basic") -> BaseChatModel:
    """Build the configured chat model. Only the OpenAI-compatible ``basic`` model is supported."""
    if llm_type != "basic":
        raise ValueError(f"Unsupported LLM type: {llm_type}")

    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {"model": get_str_env("AI_MODEL", "gpt-4o-mini")}
    base_url = get_str_env("AI_BASE_URL")
    if base_url:
        kwargs["base_url"] = base_url
    api_key = get_str_env("AI_API_KEY")
    if api_key:
        kwargs["api_key"] = api_key
    temperature = get_float_env("AI_TEMPERATURE")
    if temperature is not None:
        kwargs["temperature"] = temperature
    logger.info("Configured chat model %s", kwargs["model"])
    return ChatOpenAI(**kwargs)


@lru_cache(maxsize=1)
def get_ai_invoker() -> ChatModelInvoker:
    return ChatModelInvoker(get_llm_by_type("basic"), timeout=get_float_env("AI_TIMEOUT_SECONDS"))
