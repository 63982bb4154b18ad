import pytest

from src.orchestration.visualization import (
    SENTINEL,
    BreakdownView,
    ForecastView,
    MarginComparisonView,
    PricingView,
    VisualizationPayload,
    embed,
    render,
    split,
)


def test_split_without_block_returns_text_unchanged():
    text = "  Prices look healthy.\nNo changes needed.  "
    result = split(text)
    assert result.prose == text
    assert result.payload is None


def test_split_with_single_marker_returns_text_unchanged():
    text = f"Here is a chart {SENTINEL} {{\"type\": \"pricing\"}}"
    result = split(text)
    assert result.prose == text
    assert result.payload is None


def test_split_extracts_prose_and_payload():
    payload = VisualizationPayload(type="pricing", title="+10%", data={"currentPrice": 42})
    raw = f"Raising prices looks safe.\n{embed(payload)}\nWatch volume closely."

    result = split(raw)

    assert result.prose == "Raising prices looks safe.\n\nWatch volume closely."
    assert result.payload is not None
    assert result.payload.type == "pricing"
    assert result.payload.data == {"currentPrice": 42}
    assert SENTINEL not in result.prose


def test_split_is_idempotent_on_prose():
    payload = VisualizationPayload(type="forecast", data={})
    raw = f"Before\n{embed(payload)}\nAfter"
    first = split(raw)
    second = split(first.prose)
    assert second.prose == first.prose
    assert second.payload is None


@pytest.mark.parametrize(
    "body",
    ["{not json", "[1, 2, 3]", '"just a string"', '{"title": "missing type"}'],
)
def test_malformed_block_is_left_as_prose(body):
    raw = f"Intro {SENTINEL}{body}{SENTINEL} outro"
    result = split(raw)
    assert result.prose == raw
    assert result.payload is None


def test_only_first_block_is_honoured():
    first = VisualizationPayload(type="pricing", data={})
    second = VisualizationPayload(type="breakdown", data={})
    raw = f"A\n{embed(first)}\nB\n{embed(second)}\nC"

    result = split(raw)

    assert result.payload.type == "pricing"
    assert SENTINEL not in result.prose
    assert result.prose.startswith("A")
    assert result.prose.endswith("C")


def test_extra_payload_fields_are_kept():
    raw = f'{SENTINEL}{{"type": "pricing", "confidence": 0.8}}{SENTINEL}'
    result = split(raw)
    assert result.payload.model_extra == {"confidence": 0.8}
    assert result.prose == ""


def test_render_unknown_type_returns_none():
    assert render(VisualizationPayload(type="heatmap")) is None
    assert render(None) is None


def test_render_pricing_uses_defaults_for_missing_fields():
    view = render(VisualizationPayload(type="pricing"))

    assert isinstance(view, PricingView)
    assert view.current_price == 100
    assert view.current_margin == 30
    assert view.current_volume == 1000
    assert view.product_name == "Product"
    assert view.currency == "USD"
    assert view.cost_per_unit == pytest.approx(70)
    assert [scenario.price_change for scenario in view.scenarios] == list(range(-20, 31, 5))

    baseline = next(scenario for scenario in view.scenarios if scenario.price_change == 0)
    assert baseline.revenue_change == pytest.approx(0)
    assert baseline.profit_change == pytest.approx(0)


def test_render_pricing_applies_elasticity():
    view = render(
        VisualizationPayload(
            type="pricing",
            data={"currentPrice": 50, "currentMargin": 40, "currentVolume": 200, "productName": "Matcha"},
        )
    )
    raised = next(scenario for scenario in view.scenarios if scenario.price_change == 10)
    assert raised.price == pytest.approx(55)
    assert raised.volume == pytest.approx(190)
    assert view.title == "Pricing Scenario Analysis: Matcha"


def test_render_margin_ranks_opportunities():
    view = render(
        VisualizationPayload(
            type="comparison",
            data={
                "products": [
                    {"name": "A", "currentMargin": 20, "suggestedMargin": 25},
                    {"name": "B", "currentMargin": 30, "suggestedMargin": 45},
                    {"name": "C", "currentMargin": 40, "suggestedMargin": 35},
                    {"name": "D", "currentMargin": 10, "suggestedMargin": 12},
                ]
            },
        )
    )
    assert isinstance(view, MarginComparisonView)
    assert view.opportunities == ["B", "A", "D"]


def test_render_forecast_finds_critical_month():
    view = render(
        VisualizationPayload(
            type="forecast",
            data={
                "forecastData": [
                    {"month": "Jan", "actual": 120, "forecast": 110, "reorderPoint": 80},
                    {"month": "Feb", "forecast": 70, "reorderPoint": 80},
                    {"month": "Mar", "forecast": 60, "reorderPoint": 80},
                ]
            },
        )
    )
    assert isinstance(view, ForecastView)
    assert view.critical_month == "Feb"
    assert view.points[1].actual is None
    assert view.unit == "kg"


def test_render_breakdown_fills_missing_percentages():
    view = render(
        VisualizationPayload(
            type="breakdown",
            data={"breakdown": [{"category": "Tea", "value": 75}, {"category": "Tools", "value": 25}]},
        )
    )
    assert isinstance(view, BreakdownView)
    assert view.total == 100
    assert [item.percentage for item in view.slices] == [75, 25]
