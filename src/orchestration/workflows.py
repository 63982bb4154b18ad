from __future__ import annotations

import asyncio
import logging
import operator
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol
from uuid import uuid4

from .catalog import get_action
from .errors import ActionFailed, UnknownWorkflow, WorkflowBusy, WorkflowRunFailed
from .executor import ActionExecutor
from .models import (
    EventTrigger,
    LogStatus,
    ScheduleTrigger,
    ThresholdTrigger,
    Trigger,
    Workflow,
    WorkflowLogEntry,
    WorkflowState,
)
from .notifications import NotificationChannel

logger = logging.getLogger(__name__)

_UNCHANGED: Any = object()


class WorkflowRepository(Protocol):
    async def list_workflows(self) -> list[Workflow]: ...

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]: ...

    async def save_workflow(self, workflow: Workflow) -> None: ...

    async def append_log(self, entry: WorkflowLogEntry) -> None: ...

    async def list_logs(self, *, workflow_id: Optional[str] = None, limit: Optional[int] = None) -> list[WorkflowLogEntry]: ...


@dataclass(slots=True, frozen=True)
class TriggerSnapshot:
    """What an external poller observed when asking whether a trigger should fire."""

    now: datetime
    next_run: Optional[datetime] = None
    events: frozenset[str] = frozenset()
    metrics: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class WorkflowRun:
    workflow: Workflow
    entry: WorkflowLogEntry
    output: str


OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "less_than": operator.lt,
    "<": operator.lt,
    "less_than_or_equal": operator.le,
    "<=": operator.le,
    "greater_than": operator.gt,
    ">": operator.gt,
    "greater_than_or_equal": operator.ge,
    ">=": operator.ge,
    "equals": operator.eq,
    "==": operator.eq,
    "not_equals": operator.ne,
    "!=": operator.ne,
}


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with stored ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _schedule_due(trigger: ScheduleTrigger, snapshot: TriggerSnapshot) -> bool:
    if snapshot.next_run is None:
        return False
    return ensure_utc(snapshot.now) >= ensure_utc(snapshot.next_run)


def _event_observed(trigger: EventTrigger, snapshot: TriggerSnapshot) -> bool:
    return trigger.event in snapshot.events


def _threshold_breached(trigger: ThresholdTrigger, snapshot: TriggerSnapshot) -> bool:
    compare = OPERATORS.get(trigger.operator)
    if compare is None or trigger.field not in snapshot.metrics:
        return False
    try:
        observed = float(snapshot.metrics[trigger.field])
    except (TypeError, ValueError):
        return False
    return compare(observed, trigger.value)


_TRIGGER_RULES: dict[type, Callable[[Any, TriggerSnapshot], bool]] = {
    ScheduleTrigger: _schedule_due,
    EventTrigger: _event_observed,
    ThresholdTrigger: _threshold_breached,
}


def should_fire(trigger: Trigger, snapshot: TriggerSnapshot) -> bool:
    """Decide whether ``trigger`` fires for ``snapshot``. Unknown trigger kinds never fire."""
    rule = _TRIGGER_RULES.get(type(trigger))
    if rule is None:
        return False
    return rule(trigger, snapshot)


def default_workflows() -> list[Workflow]:
    return [
        Workflow(
            id="daily_inventory_check",
            name="Daily Inventory Check",
            description="Automatically check inventory levels and alert on low stock",
            trigger=ScheduleTrigger(cron="0 9 * * *"),
            action_ids=("auto_reorder", "optimize_stock"),
        ),
        Workflow(
            id="price_optimization",
            name="Weekly Price Review",
            description="AI analyzes pricing and suggests optimizations",
            trigger=ScheduleTrigger(cron="0 10 * * 1"),
            action_ids=("margin_optimization", "competitive_analysis", "optimize_all_prices"),
        ),
        Workflow(
            id="new_order_processing",
            name="Auto-Process New Orders",
            description="Automatically validate and process incoming orders",
            trigger=EventTrigger(event="order.created"),
            action_ids=("auto_process", "optimize_fulfillment"),
            enabled=False,
        ),
        Workflow(
            id="low_stock_alert",
            name="Low Stock Alert",
            description="Trigger alert when stock falls below threshold",
            trigger=ThresholdTrigger(field="stock_level", operator="less_than", value=10),
            action_ids=("auto_reorder", "supplier_consolidation"),
        ),
        Workflow(
            id="client_engagement",
            name="Client Engagement Analysis",
            description="Monthly analysis of client activity and engagement",
            trigger=ScheduleTrigger(cron="0 9 1 * *"),
            action_ids=("segment_clients", "churn_prediction", "upsell_opportunities"),
        ),
        Workflow(
            id="demand_forecast",
            name="Demand Forecasting",
            description="AI predicts demand for the upcoming month",
            trigger=ScheduleTrigger(cron="0 8 25 * *"),
            action_ids=("forecast_demand",),
        ),
    ]


class WorkflowEngine:
    """Toggleable automations with all-or-nothing runs and an append-only history.

    The engine has no clock or event bus of its own. A poller calls
    :meth:`evaluate` (or :func:`should_fire`) and then :meth:`fire`; operators
    call :meth:`run_now`. Every finished or skipped attempt appends exactly one
    log entry.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        executor: ActionExecutor,
        notifications: NotificationChannel,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._executor = executor
        self._notifications = notifications
        self._clock = clock
        self._running: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    async def seed_defaults(self) -> int:
        if await self._repository.list_workflows():
            return 0
        workflows = default_workflows()
        for workflow in workflows:
            await self._repository.save_workflow(workflow)
        logger.info("Seeded %d default workflows", len(workflows))
        return len(workflows)

    async def register(self, workflow: Workflow) -> Workflow:
        await self._repository.save_workflow(workflow)
        return workflow

    async def list_workflows(self) -> list[Workflow]:
        return await self._repository.list_workflows()

    async def get(self, workflow_id: str) -> Workflow:
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise UnknownWorkflow(workflow_id)
        return workflow

    def state_of(self, workflow: Workflow) -> WorkflowState:
        if not workflow.enabled:
            return WorkflowState.DISABLED
        if workflow.id in self._running:
            return WorkflowState.ENABLED_RUNNING
        return WorkflowState.ENABLED_IDLE

    def is_running(self, workflow_id: str) -> bool:
        return workflow_id in self._running

    def _lock_for(self, workflow_id: str) -> asyncio.Lock:
        # Serialises read-modify-write of one workflow row.
        lock = self._locks.get(workflow_id)
        if lock is None:
            lock = self._locks[workflow_id] = asyncio.Lock()
        return lock

    async def set_enabled(self, workflow_id: str, enabled: bool) -> Workflow:
        """Change the enabled flag. An in-flight run is not interrupted."""
        return await self._update_enabled(workflow_id, lambda _: enabled)

    async def toggle(self, workflow_id: str) -> Workflow:
        return await self._update_enabled(workflow_id, lambda current: not current)

    async def _update_enabled(self, workflow_id: str, decide: Callable[[bool], bool]) -> Workflow:
        async with self._lock_for(workflow_id):
            workflow = await self.get(workflow_id)
            enabled = decide(workflow.enabled)
            if workflow.enabled != enabled:
                workflow = replace(workflow, enabled=enabled)
                await self._repository.save_workflow(workflow)
        self._notifications.success(
            f"{workflow.name} {'enabled' if enabled else 'disabled'}", source="workflows"
        )
        return workflow

    async def logs(self, workflow_id: Optional[str] = None, limit: Optional[int] = 50) -> list[WorkflowLogEntry]:
        return await self._repository.list_logs(workflow_id=workflow_id, limit=limit)

    async def evaluate(self, snapshot: TriggerSnapshot) -> list[str]:
        """Ids of enabled, idle workflows whose trigger fires for ``snapshot``."""
        due: list[str] = []
        for workflow in await self._repository.list_workflows():
            if self.state_of(workflow) is not WorkflowState.ENABLED_IDLE:
                continue
            if should_fire(workflow.trigger, replace(snapshot, next_run=workflow.next_run)):
                due.append(workflow.id)
        return due

    async def run_now(self, workflow_id: str) -> WorkflowRun:
        """Run immediately regardless of ``enabled``; ``next_run`` is left as is."""
        workflow = await self.get(workflow_id)
        if workflow_id in self._running:
            self._notifications.error(f"{workflow.name} is already running", source="workflows")
            raise WorkflowBusy(workflow_id)
        self._notifications.info(f"Running {workflow.name}...", source="workflows")
        return await self._start(workflow, next_run=_UNCHANGED)

    async def fire(self, workflow_id: str, *, next_run: Optional[datetime] = None) -> WorkflowRun:
        """Scheduled or triggered firing reported by the poller.

        ``next_run`` is the poller's next occurrence for schedule triggers and
        replaces the stored one once the run finishes.
        """
        workflow = await self.get(workflow_id)
        if not workflow.enabled:
            return await self._skip(workflow, "Workflow is disabled")
        if workflow_id in self._running:
            return await self._skip(workflow, "Previous run still in progress")
        return await self._start(workflow, next_run=ensure_utc(next_run) if next_run is not None else _UNCHANGED)

    async def _start(self, workflow: Workflow, *, next_run: Any) -> WorkflowRun:
        self._running.add(workflow.id)
        task = asyncio.ensure_future(self._execute(workflow, next_run=next_run))
        return await asyncio.shield(task)

    async def _execute(self, workflow: Workflow, *, next_run: Any) -> WorkflowRun:
        try:
            try:
                output = await self._run_actions(workflow)
            except WorkflowRunFailed as exc:
                logger.warning("Workflow %s failed: %s", workflow.id, exc.reason)
                status, message, output = LogStatus.FAILED, f"Workflow failed: {exc.reason}", ""
            else:
                status = LogStatus.SUCCESS
                message = f"Workflow executed successfully ({len(workflow.action_ids)} action(s))"

            finished_at = self._clock()
            entry = WorkflowLogEntry(
                id=uuid4().hex,
                workflow_id=workflow.id,
                timestamp=finished_at,
                status=status,
                message=message,
            )
            await self._repository.append_log(entry)

            changes: dict[str, Any] = {"last_run": finished_at}
            if next_run is not _UNCHANGED:
                changes["next_run"] = next_run
            # Re-read under the lock so a toggle made during the run is preserved.
            async with self._lock_for(workflow.id):
                current = await self._repository.get_workflow(workflow.id) or workflow
                current = replace(current, **changes)
                await self._repository.save_workflow(current)
        finally:
            self._running.discard(workflow.id)

        if status is LogStatus.SUCCESS:
            self._notifications.success(f"{workflow.name} completed successfully", source="workflows")
        else:
            self._notifications.error(f"{workflow.name} failed", source="workflows")
        return WorkflowRun(workflow=current, entry=entry, output=output)

    async def _run_actions(self, workflow: Workflow) -> str:
        sections: list[str] = []
        for action_id in workflow.action_ids:
            action = get_action(action_id)
            if action is None:
                raise WorkflowRunFailed(workflow.id, f"unknown action {action_id}")
            try:
                text = await self._executor.execute(action)
            except ActionFailed as exc:
                raise WorkflowRunFailed(workflow.id, f"{action_id}: {exc.reason}") from exc
            except Exception as exc:  # noqa: BLE001 - any error fails the whole run
                logger.exception("Workflow %s action %s raised unexpectedly", workflow.id, action_id)
                raise WorkflowRunFailed(workflow.id, f"{action_id}: {exc}") from exc
            sections.append(f"### {action.title}\n{text}")
        return "\n\n".join(sections)

    async def _skip(self, workflow: Workflow, reason: str) -> WorkflowRun:
        entry = WorkflowLogEntry(
            id=uuid4().hex,
            workflow_id=workflow.id,
            timestamp=self._clock(),
            status=LogStatus.SKIPPED,
            message=reason,
        )
        await self._repository.append_log(entry)
        logger.info("Skipped workflow %s: %s", workflow.id, reason)
        return WorkflowRun(workflow=workflow, entry=entry, output="")
