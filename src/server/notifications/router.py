from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.orchestration.notifications import Notification, NotificationChannel
from src.server.dependencies import get_notifications

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class NotificationItem(BaseModel):
    id: str
    level: str
    message: str
    source: str
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationItem":
        return cls(
            id=notification.id,
            level=notification.level.value,
            message=notification.message,
            source=notification.source,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationItem]


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    channel: NotificationChannel = Depends(get_notifications),
) -> NotificationListResponse:
    """Most recent first."""
    return NotificationListResponse(
        notifications=[NotificationItem.from_notification(item) for item in channel.recent(limit)]
    )
