from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List
from uuid import uuid4

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    source: str
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[Notification], None]


class NotificationChannel:
    """User-visible feedback channel handed to the components that emit it.

    Subscribers are called synchronously in registration order. A failing
    subscriber is logged and does not prevent delivery to the others.
    """

    def __init__(self, buffer_size: int = 100) -> None:
        self._subscribers: List[Subscriber] = []
        self._recent: Deque[Notification] = deque(maxlen=buffer_size)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def publish(self, level: NotificationLevel, message: str, *, source: str = "orchestration") -> Notification:
        notification = Notification(level=NotificationLevel(level), message=message, source=source)
        self._recent.appendleft(notification)
        logger.debug("Notification [%s] %s: %s", notification.level.value, source, message)
        for subscriber in list(self._subscribers):
            try:
                subscriber(notification)
            except Exception:  # noqa: BLE001 - one bad listener must not block the rest
                logger.exception("Notification subscriber failed")
        return notification

    def info(self, message: str, *, source: str = "orchestration") -> Notification:
        return self.publish(NotificationLevel.INFO, message, source=source)

    def success(self, message: str, *, source: str = "orchestration") -> Notification:
        return self.publish(NotificationLevel.SUCCESS, message, source=source)

    def warning(self, message: str, *, source: str = "orchestration") -> Notification:
        return self.publish(NotificationLevel.WARNING, message, source=source)

    def error(self, message: str, *, source: str = "orchestration") -> Notification:
        return self.publish(NotificationLevel.ERROR, message, source=source)

    def recent(self, limit: int = 20) -> list[Notification]:
        return list(self._recent)[:limit]
