from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Sequence, Union

import pytest

from src.orchestration.errors import Unavailable
from src.orchestration.notifications import Notification, NotificationChannel
from src.orchestration.read_models import InMemoryReadModels

Reply = Union[str, BaseException, Callable[[str], str]]


class FakeInvoker:
    """Scripted AI collaborator.

    Replies are consumed in order; once exhausted the ``default`` answer is
    used. An exception instance is raised instead of answered. When ``gate`` is
    set every call waits for it, which keeps a request in flight.
    """

    def __init__(self, replies: Sequence[Reply] = (), *, default: Reply = "ok") -> None:
        self.replies = list(replies)
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def invoke(
        self,
        context: str,
        prompt: str,
        context_data: Optional[Any] = None,
        *,
        system_prompt: Optional[str] = None,
        history: Sequence[tuple[str, str]] = (),
    ) -> str:
        self.calls.append(
            {
                "context": context,
                "prompt": prompt,
                "context_data": context_data,
                "system_prompt": system_prompt,
                "history": list(history),
            }
        )
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class RecordingChannel(NotificationChannel):
    def __init__(self) -> None:
        super().__init__()
        self.received: list[Notification] = []
        self.subscribe(self.received.append)

    def levels(self) -> list[str]:
        return [item.level.value for item in self.received]


SAMPLE_SNAPSHOT: dict[str, Any] = {
    "clients": [{"id": "c1", "name": "Kyoto Cafe", "tier": "gold"}],
    "suppliers": [{"id": "s1", "name": "Uji Farms"}],
    "skus": [{"id": "p1", "name": "Ceremonial Matcha"}],
    "pricing": [{"skuId": "p1", "price": 42.0, "cost": 28.0}],
    "inventory": [
        {"skuId": "p1", "totalStockKg": 12, "allocatedStockKg": 5, "lowStockThresholdKg": 10},
        {"skuId": "p2", "totalStockKg": 100, "allocatedStockKg": 10, "lowStockThresholdKg": 10},
    ],
    "recentOrders": [
        {"id": "o1", "status": "pending"},
        {"id": "o2", "status": "shipped"},
    ],
}


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def read_models() -> InMemoryReadModels:
    return InMemoryReadModels(dict(SAMPLE_SNAPSHOT))


@pytest.fixture
def unavailable() -> Unavailable:
    return Unavailable("AI service unavailable: boom")
