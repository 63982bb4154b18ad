"""Extraction and rendering of visualization blocks embedded in assistant text.

The assistant is asked to wrap a JSON object between two identical sentinel
markers::

    Raising prices looks safe.
    <<<VISUALIZATION>>>
    {"type": "pricing", "title": "+10%", "data": {"currentPrice": 42}}
    <<<VISUALIZATION>>>

:func:`split` separates the prose from that block and :func:`render` turns the
decoded payload into a typed view. Both are tolerant: the text generator is not
under our control, so anything that does not decode is left as plain prose and
anything with an unknown ``type`` renders nothing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedPayload

logger = logging.getLogger(__name__)

SENTINEL = "<<<VISUALIZATION>>>"

PRICE_CHANGE_STEPS = tuple(range(-20, 31, 5))
PRICE_ELASTICITY = -0.5


class VisualizationPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    title: Optional[str] = None
    description: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


@dataclass(slots=True, frozen=True)
class SplitResult:
    prose: str
    payload: Optional[VisualizationPayload] = None


def split(raw_text: str) -> SplitResult:
    """Separate the prose of ``raw_text`` from its first visualization block."""
    try:
        start, end, payload = _extract_first_block(raw_text)
    except MalformedPayload as exc:
        logger.debug("Ignoring malformed visualization block: %s", exc)
        return SplitResult(prose=raw_text)
    if payload is None:
        return SplitResult(prose=raw_text)

    before = raw_text[:start].rstrip()
    after = _strip_remaining_blocks(raw_text[end:]).lstrip()
    prose = "\n\n".join(part for part in (before, after) if part)
    return SplitResult(prose=prose.strip(), payload=payload)


def embed(payload: VisualizationPayload) -> str:
    """Serialise ``payload`` into the delimited wire block."""
    body = json.dumps(payload.model_dump(exclude_none=True), ensure_ascii=False, indent=2)
    return f"{SENTINEL}\n{body}\n{SENTINEL}"


def _extract_first_block(raw_text: str) -> tuple[int, int, Optional[VisualizationPayload]]:
    start = raw_text.find(SENTINEL)
    if start == -1:
        return -1, -1, None
    body_start = start + len(SENTINEL)
    close = raw_text.find(SENTINEL, body_start)
    if close == -1:
        return -1, -1, None

    body = raw_text[body_start:close].strip()
    try:
        decoded = json.loads(body)
    except ValueError as exc:
        raise MalformedPayload(f"block is not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MalformedPayload("block is not a JSON object")
    try:
        payload = VisualizationPayload.model_validate(decoded)
    except ValidationError as exc:
        raise MalformedPayload(str(exc)) from exc
    return start, close + len(SENTINEL), payload


def _strip_remaining_blocks(text: str) -> str:
    # Only the first block is honoured; later blocks and stray markers are
    # dropped so the displayed prose never shows the sentinel.
    while True:
        start = text.find(SENTINEL)
        if start == -1:
            return text
        close = text.find(SENTINEL, start + len(SENTINEL))
        if close == -1:
            return text[:start] + text[start + len(SENTINEL):]
        text = text[:start].rstrip() + "\n\n" + text[close + len(SENTINEL):].lstrip()


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class PricingScenario(BaseModel):
    price_change: int
    price: float
    volume: float
    revenue: float
    margin: float
    profit: float
    revenue_change: float
    profit_change: float


class PricingView(BaseModel):
    kind: str = "pricing"
    title: str
    product_name: str
    currency: str
    current_price: float
    current_margin: float
    current_volume: float
    cost_per_unit: float
    scenarios: list[PricingScenario]


class MarginProduct(BaseModel):
    name: str
    current_margin: float
    suggested_margin: float
    revenue: float

    @property
    def uplift(self) -> float:
        return self.suggested_margin - self.current_margin


class MarginComparisonView(BaseModel):
    kind: str = "margin"
    title: str
    products: list[MarginProduct]
    opportunities: list[str]


class ForecastPoint(BaseModel):
    month: str
    actual: Optional[float] = None
    forecast: float
    reorder_point: float


class ForecastView(BaseModel):
    kind: str = "forecast"
    title: str
    product_name: str
    unit: str
    points: list[ForecastPoint]
    critical_month: Optional[str] = None


class BreakdownSlice(BaseModel):
    category: str
    value: float
    percentage: float


class BreakdownView(BaseModel):
    kind: str = "breakdown"
    title: str
    total: float
    currency: str
    slices: list[BreakdownSlice]


View = Union[PricingView, MarginComparisonView, ForecastView, BreakdownView]
Renderer = Callable[[VisualizationPayload], View]


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number or default


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _records(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def render_pricing(payload: VisualizationPayload) -> PricingView:
    data = payload.data
    price = _number(data.get("currentPrice"), 100.0)
    margin = _number(data.get("currentMargin"), 30.0)
    volume = _number(data.get("currentVolume"), 1000.0)
    product_name = _text(data.get("productName"), "Product")

    cost = price * (1 - margin / 100)
    current_revenue = price * volume
    current_profit = (price - cost) * volume

    scenarios: list[PricingScenario] = []
    for change in PRICE_CHANGE_STEPS:
        new_price = price * (1 + change / 100)
        new_volume = volume * (1 + change * PRICE_ELASTICITY / 100)
        revenue = new_price * new_volume
        profit = (new_price - cost) * new_volume
        scenarios.append(
            PricingScenario(
                price_change=change,
                price=new_price,
                volume=new_volume,
                revenue=revenue,
                margin=(new_price - cost) / new_price * 100,
                profit=profit,
                revenue_change=(revenue - current_revenue) / current_revenue * 100,
                profit_change=(profit - current_profit) / current_profit * 100 if current_profit else 0.0,
            )
        )

    return PricingView(
        title=payload.title or f"Pricing Scenario Analysis: {product_name}",
        product_name=product_name,
        currency=_text(data.get("currency"), "USD"),
        current_price=price,
        current_margin=margin,
        current_volume=volume,
        cost_per_unit=cost,
        scenarios=scenarios,
    )


def render_margin(payload: VisualizationPayload) -> MarginComparisonView:
    products = [
        MarginProduct(
            name=_text(item.get("name"), "Product"),
            current_margin=_number(item.get("currentMargin"), 0.0),
            suggested_margin=_number(item.get("suggestedMargin"), 0.0),
            revenue=_number(item.get("revenue"), 0.0),
        )
        for item in _records(payload.data.get("products"))
    ]
    ranked = sorted(products, key=lambda product: product.uplift, reverse=True)
    return MarginComparisonView(
        kind=payload.type,
        title=payload.title or "Margin Comparison",
        products=products,
        opportunities=[product.name for product in ranked[:3] if product.uplift > 0],
    )


def render_forecast(payload: VisualizationPayload) -> ForecastView:
    data = payload.data
    points: list[ForecastPoint] = []
    for item in _records(data.get("forecastData")):
        actual = item.get("actual")
        points.append(
            ForecastPoint(
                month=_text(item.get("month"), ""),
                actual=_number(actual, 0.0) if actual is not None else None,
                forecast=_number(item.get("forecast"), 0.0),
                reorder_point=_number(item.get("reorderPoint"), 0.0),
            )
        )
    critical = next((point.month for point in points if point.forecast < point.reorder_point), None)
    product_name = _text(data.get("productName"), "Product")
    return ForecastView(
        title=payload.title or f"Inventory Forecast: {product_name}",
        product_name=product_name,
        unit=_text(data.get("unit"), "kg"),
        points=points,
        critical_month=critical,
    )


def render_breakdown(payload: VisualizationPayload) -> BreakdownView:
    data = payload.data
    entries = _records(data.get("breakdown"))
    values = [_number(item.get("value"), 0.0) for item in entries]
    total = _number(data.get("total"), 0.0) or sum(values)

    slices: list[BreakdownSlice] = []
    for item, value in zip(entries, values):
        percentage = item.get("percentage")
        if percentage is None:
            percentage = value / total * 100 if total else 0.0
        slices.append(
            BreakdownSlice(
                category=_text(item.get("category"), "Other"),
                value=value,
                percentage=_number(percentage, 0.0),
            )
        )
    return BreakdownView(
        title=payload.title or "Profit Breakdown",
        total=total,
        currency=_text(data.get("currency"), "USD"),
        slices=slices,
    )


RENDERERS: dict[str, Renderer] = {
    "pricing": render_pricing,
    "margin": render_margin,
    "comparison": render_margin,
    "forecast": render_forecast,
    "breakdown": render_breakdown,
}


def render(payload: Optional[VisualizationPayload]) -> Optional[View]:
    """Return the view for ``payload`` or ``None`` when its type is unknown."""
    if payload is None:
        return None
    renderer = RENDERERS.get(payload.type)
    if renderer is None:
        logger.debug("No renderer registered for visualization type %r", payload.type)
        return None
    return renderer(payload)
