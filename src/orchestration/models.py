from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


@dataclass(slots=True)
class SessionRecord:
    id: str
    context: str
    created_at: datetime
    updated_at: datetime
    last_message_preview: Optional[str]


@dataclass(slots=True, frozen=True)
class MessageRecord:
    id: str
    session_id: str
    role: str
    content: str
    metadata: Optional[dict[str, Any]]
    seq: int
    created_at: datetime


@dataclass(slots=True, frozen=True)
class PendingMessage:
    role: str
    content: str
    created_at: datetime
    metadata: Optional[dict[str, Any]] = None


class TriggerKind(str, Enum):
    SCHEDULE = "schedule"
    EVENT = "event"
    THRESHOLD = "threshold"


@dataclass(slots=True, frozen=True)
class ScheduleTrigger:
    cron: str
    kind: str = TriggerKind.SCHEDULE.value


@dataclass(slots=True, frozen=True)
class EventTrigger:
    event: str
    kind: str = TriggerKind.EVENT.value


@dataclass(slots=True, frozen=True)
class ThresholdTrigger:
    field: str
    operator: str
    value: float
    kind: str = TriggerKind.THRESHOLD.value


@dataclass(slots=True, frozen=True)
class UnknownTrigger:
    """A trigger kind this version does not understand; it never fires."""

    kind: str
    config: dict[str, Any] = field(default_factory=dict)


Trigger = Union[ScheduleTrigger, EventTrigger, ThresholdTrigger, UnknownTrigger]


def trigger_config(trigger: Trigger) -> dict[str, Any]:
    if isinstance(trigger, ScheduleTrigger):
        return {"schedule": trigger.cron}
    if isinstance(trigger, EventTrigger):
        return {"event": trigger.event}
    if isinstance(trigger, ThresholdTrigger):
        return {"threshold": {"field": trigger.field, "operator": trigger.operator, "value": trigger.value}}
    return dict(trigger.config)


def trigger_from_config(kind: str, config: dict[str, Any]) -> Trigger:
    try:
        if kind == TriggerKind.SCHEDULE.value:
            return ScheduleTrigger(cron=str(config["schedule"]))
        if kind == TriggerKind.EVENT.value:
            return EventTrigger(event=str(config["event"]))
        if kind == TriggerKind.THRESHOLD.value:
            threshold = config["threshold"]
            return ThresholdTrigger(
                field=str(threshold["field"]),
                operator=str(threshold["operator"]),
                value=float(threshold["value"]),
            )
    except (KeyError, TypeError, ValueError):
        pass
    return UnknownTrigger(kind=kind, config=dict(config))


def describe_trigger(trigger: Trigger) -> str:
    if isinstance(trigger, ScheduleTrigger):
        return trigger.cron
    if isinstance(trigger, EventTrigger):
        return trigger.event
    if isinstance(trigger, ThresholdTrigger):
        return f"{trigger.field} {trigger.operator} {trigger.value:g}"
    return f"unknown trigger {trigger.kind}"


class WorkflowState(str, Enum):
    DISABLED = "disabled"
    ENABLED_IDLE = "enabled-idle"
    ENABLED_RUNNING = "enabled-running"


@dataclass(slots=True)
class Workflow:
    id: str
    name: str
    trigger: Trigger
    action_ids: tuple[str, ...]
    enabled: bool = True
    description: str = ""
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    def with_changes(self, **changes: Any) -> "Workflow":
        return replace(self, **changes)


class LogStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class WorkflowLogEntry:
    id: str
    workflow_id: str
    timestamp: datetime
    status: LogStatus
    message: str
