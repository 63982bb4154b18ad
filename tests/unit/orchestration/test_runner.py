import pytest

from src.orchestration.errors import EmptySelection
from src.orchestration.executor import ActionExecutor
from src.orchestration.read_models import INVALIDATED_AFTER_ACTIONS
from src.orchestration.runner import (
    FAILURE_MESSAGE,
    SUCCESS_MESSAGE,
    UNKNOWN_ACTION_MESSAGE,
    BulkActionRunner,
    RunOutcome,
)


@pytest.fixture
def runner(fake_invoker, read_models, channel):
    return BulkActionRunner(ActionExecutor(fake_invoker, read_models), read_models, channel)


@pytest.mark.asyncio
async def test_all_actions_succeed(runner, fake_invoker, read_models, channel):
    fake_invoker.replies = ["Reorder 20kg", "Keep 50kg on hand"]

    run = await runner.run(["auto_reorder", "optimize_stock"], "inventory")

    assert run.outcome is RunOutcome.SUCCESS
    assert run.progress_percent == 100
    assert run.results["auto_reorder"].message == SUCCESS_MESSAGE
    assert run.narrative == (
        "### Auto-Generate Reorder List\nReorder 20kg\n\n### Optimize Stock Levels\nKeep 50kg on hand"
    )
    assert read_models.invalidations == list(INVALIDATED_AFTER_ACTIONS)
    assert channel.levels() == ["success"]


@pytest.mark.asyncio
async def test_one_failure_yields_partial_outcome(runner, fake_invoker, read_models, channel, unavailable):
    fake_invoker.replies = [unavailable, "Segment A, B and C"]

    run = await runner.run(["churn_prediction", "segment_clients"], "clients")

    assert run.outcome is RunOutcome.PARTIAL
    assert run.progress_percent == 100
    assert run.results["churn_prediction"].success is False
    assert run.results["churn_prediction"].message == FAILURE_MESSAGE
    assert run.results["segment_clients"].success is True
    assert "Predict Churn Risk" not in run.narrative
    assert "Segment A, B and C" in run.narrative
    assert read_models.invalidations
    assert channel.levels() == ["warning"]
    assert channel.received[0].message == "1/2 actions completed"


@pytest.mark.asyncio
async def test_all_failed_run_does_not_invalidate(runner, fake_invoker, read_models, unavailable):
    fake_invoker.default = unavailable

    run = await runner.run(["auto_process", "predict_delays"], "orders")

    assert run.outcome is RunOutcome.PARTIAL
    assert run.success_count == 0
    assert read_models.invalidations == []


@pytest.mark.asyncio
async def test_actions_execute_in_selection_order_without_duplicates(runner, fake_invoker):
    fake_invoker.default = lambda prompt: prompt[:20]

    run = await runner.run(["margin_optimization", "optimize_all_prices", "margin_optimization"], "pricing")

    assert run.selected_action_ids == ("margin_optimization", "optimize_all_prices")
    assert len(fake_invoker.calls) == 2
    assert "suboptimal margins" in fake_invoker.calls[0]["prompt"]
    assert "suggest pricing optimizations" in fake_invoker.calls[1]["prompt"]


@pytest.mark.asyncio
async def test_unknown_action_is_recorded_as_failure(runner):
    run = await runner.run(["optimize_all_prices", "auto_reorder"], "pricing")

    assert run.results["auto_reorder"].message == UNKNOWN_ACTION_MESSAGE
    assert run.outcome is RunOutcome.PARTIAL
    assert run.completed_count == 2


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_ends_at_100(runner):
    handle = runner.start(["segment_clients", "upsell_opportunities", "churn_prediction"], "clients")

    progress = [update.progress_percent async for update in handle.updates()]
    run = await handle.wait()

    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert len(progress) == 3
    assert run.finished


def test_empty_selection_is_rejected(runner, channel):
    with pytest.raises(EmptySelection):
        runner.start([], "inventory")
    assert channel.levels() == ["error"]


@pytest.mark.asyncio
async def test_stream_yields_one_update_per_action(runner):
    updates = [update async for update in runner.stream(["supplier_consolidation"], "suppliers")]
    assert [(u.action_id, u.completed, u.total) for u in updates] == [("supplier_consolidation", 1, 1)]
