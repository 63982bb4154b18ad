from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Iterable, Optional

from .catalog import get_action
from .errors import ActionFailed, EmptySelection
from .executor import ActionExecutor
from .notifications import NotificationChannel
from .read_models import INVALIDATED_AFTER_ACTIONS, ReadModels

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Completed successfully"
FAILURE_MESSAGE = "execution failed"
UNKNOWN_ACTION_MESSAGE = "unknown action"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"


@dataclass(slots=True, frozen=True)
class ActionResult:
    success: bool
    message: str


@dataclass(slots=True)
class BulkRun:
    domain: str
    selected_action_ids: tuple[str, ...]
    results: dict[str, ActionResult] = field(default_factory=dict)
    progress_percent: float = 0.0
    narrative: str = ""
    outcome: Optional[RunOutcome] = None

    @property
    def total(self) -> int:
        return len(self.selected_action_ids)

    @property
    def completed_count(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results.values() if result.success)

    @property
    def finished(self) -> bool:
        return self.outcome is not None


@dataclass(slots=True, frozen=True)
class BulkRunUpdate:
    action_id: str
    result: ActionResult
    completed: int
    total: int
    progress_percent: float


class BulkRunHandle:
    """Observable view of a started run.

    The run itself executes in a background task: a caller that stops
    iterating :meth:`updates` or stops awaiting :meth:`wait` does not stop it.
    """

    def __init__(self, run: BulkRun, task: "asyncio.Task[BulkRun]", queue: "asyncio.Queue[Optional[BulkRunUpdate]]") -> None:
        self.run = run
        self._task = task
        self._queue = queue

    async def updates(self) -> AsyncIterator[BulkRunUpdate]:
        while True:
            update = await self._queue.get()
            if update is None:
                return
            yield update

    async def wait(self) -> BulkRun:
        return await asyncio.shield(self._task)


class BulkActionRunner:
    """Executes a selection of catalog actions one after another."""

    def __init__(
        self,
        executor: ActionExecutor,
        read_models: ReadModels,
        notifications: NotificationChannel,
    ) -> None:
        self._executor = executor
        self._read_models = read_models
        self._notifications = notifications

    def start(self, selected_ids: Iterable[str], domain: str) -> BulkRunHandle:
        ordered = tuple(dict.fromkeys(selected_ids))
        if not ordered:
            self._notifications.error("Please select at least one action", source="bulk_actions")
            raise EmptySelection("At least one action must be selected")

        run = BulkRun(domain=domain, selected_action_ids=ordered)
        queue: asyncio.Queue[Optional[BulkRunUpdate]] = asyncio.Queue()
        task = asyncio.ensure_future(self._execute(run, queue))
        logger.info("Started bulk run on %s with %d action(s)", domain, run.total)
        return BulkRunHandle(run, task, queue)

    async def run(self, selected_ids: Iterable[str], domain: str) -> BulkRun:
        return await self.start(selected_ids, domain).wait()

    async def stream(self, selected_ids: Iterable[str], domain: str) -> AsyncIterator[BulkRunUpdate]:
        handle = self.start(selected_ids, domain)
        async for update in handle.updates():
            yield update

    async def _execute(self, run: BulkRun, queue: "asyncio.Queue[Optional[BulkRunUpdate]]") -> BulkRun:
        sections: list[str] = []
        try:
            for index, action_id in enumerate(run.selected_action_ids, start=1):
                result, section = await self._execute_one(action_id, run.domain)
                if section:
                    sections.append(section)
                run.results[action_id] = result
                run.progress_percent = 100.0 if index == run.total else index / run.total * 100
                queue.put_nowait(
                    BulkRunUpdate(
                        action_id=action_id,
                        result=result,
                        completed=index,
                        total=run.total,
                        progress_percent=run.progress_percent,
                    )
                )

            run.narrative = "\n\n".join(sections)
            run.outcome = RunOutcome.SUCCESS if run.success_count == run.total else RunOutcome.PARTIAL
            if run.success_count:
                await self._invalidate_read_models()
            self._report(run)
            return run
        finally:
            queue.put_nowait(None)

    async def _execute_one(self, action_id: str, domain: str) -> tuple[ActionResult, Optional[str]]:
        action = get_action(action_id, domain)
        if action is None:
            logger.warning("Bulk run on %s: unknown action %s", domain, action_id)
            return ActionResult(success=False, message=UNKNOWN_ACTION_MESSAGE), None
        try:
            text = await self._executor.execute(action)
        except ActionFailed as exc:
            logger.warning("Bulk action %s failed: %s", action_id, exc.reason)
            return ActionResult(success=False, message=FAILURE_MESSAGE), None
        except Exception:  # noqa: BLE001 - one action never aborts the batch
            logger.exception("Bulk action %s raised unexpectedly", action_id)
            return ActionResult(success=False, message=FAILURE_MESSAGE), None
        return ActionResult(success=True, message=SUCCESS_MESSAGE), f"### {action.title}\n{text}"

    async def _invalidate_read_models(self) -> None:
        for domain in INVALIDATED_AFTER_ACTIONS:
            try:
                await self._read_models.invalidate(domain)
            except Exception:  # noqa: BLE001 - refresh is best effort
                logger.exception("Failed to invalidate read model %s", domain)

    def _report(self, run: BulkRun) -> None:
        if run.outcome is RunOutcome.SUCCESS:
            self._notifications.success(
                f"All {run.total} actions completed successfully!", source="bulk_actions"
            )
        else:
            self._notifications.warning(
                f"{run.success_count}/{run.total} actions completed", source="bulk_actions"
            )
