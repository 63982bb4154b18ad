import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.orchestration.errors import Busy, UnknownWorkflow, WorkflowBusy
from src.orchestration.executor import ActionExecutor
from src.orchestration.models import (
    EventTrigger,
    LogStatus,
    ScheduleTrigger,
    ThresholdTrigger,
    UnknownTrigger,
    Workflow,
    WorkflowState,
)
from src.orchestration.workflows import TriggerSnapshot, WorkflowEngine, default_workflows, should_fire
from src.server.workflows.store import SQLiteWorkflowStore

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    store = SQLiteWorkflowStore(str(tmp_path / "workflows.db"))
    asyncio.run(store.init())
    return store


@pytest.fixture
def engine(store, fake_invoker, read_models, channel):
    return WorkflowEngine(store, ActionExecutor(fake_invoker, read_models), channel, clock=lambda: NOW)


def _workflow(**overrides) -> Workflow:
    values = dict(
        id="nightly",
        name="Nightly Review",
        trigger=ScheduleTrigger(cron="0 2 * * *"),
        action_ids=("auto_reorder", "optimize_stock"),
    )
    values.update(overrides)
    return Workflow(**values)


class PausingWorkflowStore(SQLiteWorkflowStore):
    """Holds one workflow read open until ``release`` is set."""

    def __init__(self, db_path: str, *, pause_after_log: bool = False) -> None:
        super().__init__(db_path)
        self.pause_after_log = pause_after_log
        self.armed = False
        self.logged = asyncio.Event()
        self.paused = asyncio.Event()
        self.release = asyncio.Event()

    async def append_log(self, entry):
        await super().append_log(entry)
        self.logged.set()
        if self.pause_after_log:
            self.armed = True

    async def get_workflow(self, workflow_id):
        workflow = await super().get_workflow(workflow_id)
        if self.armed:
            self.armed = False
            self.paused.set()
            await self.release.wait()
        return workflow


@pytest.mark.asyncio
async def test_seed_defaults_only_once(engine):
    assert await engine.seed_defaults() == len(default_workflows())
    assert await engine.seed_defaults() == 0

    workflows = await engine.list_workflows()
    assert [w.id for w in workflows] == [w.id for w in default_workflows()]
    disabled = next(w for w in workflows if w.id == "new_order_processing")
    assert engine.state_of(disabled) is WorkflowState.DISABLED


@pytest.mark.asyncio
async def test_run_now_success_appends_one_log_entry(engine, channel):
    next_run = NOW + timedelta(days=1)
    await engine.register(_workflow(next_run=next_run))

    result = await engine.run_now("nightly")

    assert result.entry.status is LogStatus.SUCCESS
    assert "### Auto-Generate Reorder List" in result.output
    assert result.workflow.last_run == NOW
    assert result.workflow.next_run == next_run
    logs = await engine.logs("nightly")
    assert len(logs) == 1
    assert channel.levels() == ["info", "success"]


@pytest.mark.asyncio
async def test_run_is_all_or_nothing(engine, fake_invoker, channel, unavailable):
    await engine.register(_workflow())
    fake_invoker.replies = ["Reorder 20kg", unavailable]

    result = await engine.run_now("nightly")

    assert result.entry.status is LogStatus.FAILED
    assert result.output == ""
    assert "optimize_stock" in result.entry.message
    assert (await engine.get("nightly")).last_run == NOW
    assert channel.levels() == ["info", "error"]


@pytest.mark.asyncio
async def test_unknown_action_fails_the_run(engine):
    await engine.register(_workflow(action_ids=("auto_reorder", "retired_action")))
    result = await engine.run_now("nightly")
    assert result.entry.status is LogStatus.FAILED


@pytest.mark.asyncio
async def test_run_now_ignores_enabled_flag(engine):
    await engine.register(_workflow(enabled=False))
    result = await engine.run_now("nightly")
    assert result.entry.status is LogStatus.SUCCESS


@pytest.mark.asyncio
async def test_concurrent_run_now_is_rejected(engine, fake_invoker, channel):
    await engine.register(_workflow())
    fake_invoker.gate = asyncio.Event()
    first = asyncio.create_task(engine.run_now("nightly"))
    await fake_invoker.started.wait()

    workflow = await engine.get("nightly")
    assert engine.state_of(workflow) is WorkflowState.ENABLED_RUNNING
    with pytest.raises(WorkflowBusy) as excinfo:
        await engine.run_now("nightly")
    assert excinfo.value.resource_id == excinfo.value.workflow_id == "nightly"
    assert not isinstance(excinfo.value, Busy)
    skipped = await engine.fire("nightly")
    assert skipped.entry.status is LogStatus.SKIPPED

    fake_invoker.gate.set()
    await first
    assert [entry.status for entry in await engine.logs("nightly")] == [LogStatus.SUCCESS, LogStatus.SKIPPED]
    assert channel.levels() == ["info", "error", "success"]


@pytest.mark.asyncio
async def test_fire_on_disabled_workflow_is_skipped(engine, fake_invoker):
    await engine.register(_workflow(enabled=False))

    result = await engine.fire("nightly")

    assert result.entry.status is LogStatus.SKIPPED
    assert fake_invoker.calls == []
    assert (await engine.get("nightly")).last_run is None


@pytest.mark.asyncio
async def test_fire_updates_next_run(engine):
    await engine.register(_workflow())
    upcoming = NOW + timedelta(days=1)

    result = await engine.fire("nightly", next_run=upcoming)

    assert result.workflow.next_run == upcoming
    assert (await engine.get("nightly")).next_run == upcoming


@pytest.mark.asyncio
async def test_toggle_keeps_history(engine, channel):
    await engine.register(_workflow())
    await engine.run_now("nightly")

    toggled = await engine.toggle("nightly")
    assert toggled.enabled is False
    toggled = await engine.toggle("nightly")
    assert toggled.enabled is True

    assert len(await engine.logs("nightly")) == 1
    assert channel.received[-1].message == "Nightly Review enabled"


@pytest.mark.asyncio
async def test_toggle_during_run_is_preserved(engine, fake_invoker):
    await engine.register(_workflow())
    fake_invoker.gate = asyncio.Event()
    running = asyncio.create_task(engine.run_now("nightly"))
    await fake_invoker.started.wait()

    await engine.set_enabled("nightly", False)
    fake_invoker.gate.set()
    result = await running

    assert result.workflow.enabled is False
    assert (await engine.get("nightly")).enabled is False


@pytest.mark.asyncio
async def test_toggle_while_run_is_saving_is_not_overwritten(tmp_path, fake_invoker, read_models, channel):
    store = PausingWorkflowStore(str(tmp_path / "paused.db"), pause_after_log=True)
    await store.init()
    engine = WorkflowEngine(store, ActionExecutor(fake_invoker, read_models), channel, clock=lambda: NOW)
    await engine.register(_workflow())

    running = asyncio.create_task(engine.run_now("nightly"))
    await store.paused.wait()
    toggling = asyncio.create_task(engine.set_enabled("nightly", False))
    await asyncio.sleep(0)
    store.release.set()
    await running
    await toggling

    stored = await engine.get("nightly")
    assert stored.enabled is False
    assert stored.last_run == NOW


@pytest.mark.asyncio
async def test_run_finishing_during_toggle_keeps_last_run(tmp_path, fake_invoker, read_models, channel):
    store = PausingWorkflowStore(str(tmp_path / "paused.db"))
    await store.init()
    engine = WorkflowEngine(store, ActionExecutor(fake_invoker, read_models), channel, clock=lambda: NOW)
    await engine.register(_workflow())

    store.armed = True
    toggling = asyncio.create_task(engine.set_enabled("nightly", False))
    await store.paused.wait()
    running = asyncio.create_task(engine.run_now("nightly"))
    await store.logged.wait()
    store.release.set()
    await toggling
    await running

    stored = await engine.get("nightly")
    assert stored.enabled is False
    assert stored.last_run == NOW


@pytest.mark.asyncio
async def test_fire_with_naive_next_run_is_stored_as_utc(engine):
    await engine.register(_workflow())

    result = await engine.fire("nightly", next_run=datetime(2025, 3, 4, 2, 0))

    assert result.workflow.next_run == datetime(2025, 3, 4, 2, 0, tzinfo=timezone.utc)
    due = await engine.evaluate(TriggerSnapshot(now=datetime(2025, 3, 4, 2, 30)))
    assert due == ["nightly"]


@pytest.mark.asyncio
async def test_unknown_workflow(engine):
    with pytest.raises(UnknownWorkflow):
        await engine.run_now("missing")


@pytest.mark.asyncio
async def test_evaluate_returns_due_enabled_workflows(engine):
    await engine.register(_workflow(id="due", next_run=NOW - timedelta(minutes=1)))
    await engine.register(_workflow(id="later", next_run=NOW + timedelta(hours=1)))
    await engine.register(_workflow(id="off", enabled=False, next_run=NOW - timedelta(minutes=1)))
    await engine.register(
        _workflow(id="orders", trigger=EventTrigger(event="order.created"))
    )

    due = await engine.evaluate(TriggerSnapshot(now=NOW, events=frozenset({"order.created"})))

    assert due == ["due", "orders"]


def test_should_fire_threshold():
    trigger = ThresholdTrigger(field="stock_level", operator="less_than", value=10)
    assert should_fire(trigger, TriggerSnapshot(now=NOW, metrics={"stock_level": 4}))
    assert not should_fire(trigger, TriggerSnapshot(now=NOW, metrics={"stock_level": 12}))
    assert not should_fire(trigger, TriggerSnapshot(now=NOW, metrics={}))
    assert not should_fire(trigger, TriggerSnapshot(now=NOW, metrics={"stock_level": "n/a"}))


def test_should_fire_unknown_trigger_never_fires():
    trigger = UnknownTrigger(kind="webhook", config={"url": "https://example.invalid"})
    assert not should_fire(trigger, TriggerSnapshot(now=NOW, events=frozenset({"webhook"})))
    bad_operator = ThresholdTrigger(field="x", operator="between", value=1)
    assert not should_fire(bad_operator, TriggerSnapshot(now=NOW, metrics={"x": 0}))


def test_should_fire_schedule_requires_next_run():
    trigger = ScheduleTrigger(cron="0 9 * * *")
    assert not should_fire(trigger, TriggerSnapshot(now=NOW))
    assert should_fire(trigger, TriggerSnapshot(now=NOW, next_run=NOW))
