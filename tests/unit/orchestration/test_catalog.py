from src.orchestration.catalog import (
    CATALOG,
    Priority,
    actions_for,
    domains,
    find_by_operation,
    get_action,
    prompt_for,
)
from src.orchestration.prompts import (
    SUGGESTED_QUESTIONS,
    build_system_prompt,
    is_scenario_question,
    suggested_questions,
)
from src.orchestration.visualization import SENTINEL


def test_actions_for_unknown_domain_is_empty():
    assert actions_for("marketing") == ()


def test_actions_are_listed_in_display_order():
    assert [action.id for action in actions_for("pricing")] == [
        "optimize_all_prices",
        "competitive_analysis",
        "margin_optimization",
    ]
    assert actions_for("inventory")[0].priority is Priority.HIGH


def test_action_ids_are_unique_across_catalog():
    ids = [action.id for group in CATALOG.values() for action in group]
    assert len(ids) == len(set(ids))
    assert set(domains()) == {"inventory", "pricing", "clients", "orders", "suppliers"}


def test_get_action_respects_domain():
    assert get_action("auto_reorder").domain == "inventory"
    assert get_action("auto_reorder", "inventory") is not None
    assert get_action("auto_reorder", "pricing") is None
    assert get_action("does_not_exist") is None


def test_prompt_for_specialised_operation_embeds_business_data():
    prompt = prompt_for("pricing_optimization", {"skus": [{"name": "Ceremonial"}], "pricing": []})
    assert "suggest pricing optimizations" in prompt
    assert "Ceremonial" in prompt


def test_prompt_for_generic_operation_uses_action_description():
    prompt = prompt_for("churn_prediction", {"clients": [{"name": "Kyoto Cafe"}]})
    assert find_by_operation("churn_prediction").description in prompt
    assert "Kyoto Cafe" in prompt


def test_scenario_questions_request_visualization():
    assert is_scenario_question("What if I raise prices by 10%?")
    assert not is_scenario_question("Who is my best client?")

    prompt = build_system_prompt("pricing", {"clients": [{}, {}]}, "What if I raise prices?")
    assert SENTINEL in prompt
    assert "Total Clients: 2" in prompt

    plain = build_system_prompt("pricing", {}, "List my suppliers")
    assert SENTINEL not in plain


def test_suggested_questions_fall_back_to_general():
    assert suggested_questions("unknown") == SUGGESTED_QUESTIONS["general"]
    assert suggested_questions("clients") == SUGGESTED_QUESTIONS["clients"]
