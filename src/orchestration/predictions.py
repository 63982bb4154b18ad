"""Advisory predictions derived from the current business snapshot.

Every refresh recomputes the full list from scratch; nothing is remembered
between calls, so an unresolved condition is reported again on each refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .catalog import get_action
from .errors import ActionFailed
from .executor import ActionExecutor
from .notifications import NotificationChannel
from .read_models import ReadModels

logger = logging.getLogger(__name__)

PENDING_ORDERS_ALERT_THRESHOLD = 3


class PredictionKind(str, Enum):
    ALERT = "alert"
    OPPORTUNITY = "opportunity"
    RECOMMENDATION = "recommendation"


@dataclass(slots=True, frozen=True)
class Prediction:
    id: str
    kind: PredictionKind
    category: str
    title: str
    description: str
    prediction: str
    confidence: int
    impact: str
    action_ref: Optional[str] = None
    action_label: Optional[str] = None


@dataclass(slots=True, frozen=True)
class QuickActionResult:
    prediction: Prediction
    action_id: str
    output: str


@dataclass(slots=True, frozen=True)
class BusinessSnapshot:
    low_stock: list[dict[str, Any]] = field(default_factory=list)
    orders: list[dict[str, Any]] = field(default_factory=list)
    clients: list[dict[str, Any]] = field(default_factory=list)
    inventory: list[dict[str, Any]] = field(default_factory=list)
    pricing: list[dict[str, Any]] = field(default_factory=list)

    @property
    def pending_orders(self) -> list[dict[str, Any]]:
        return [order for order in self.orders if order.get("status") == "pending"]


async def load_snapshot(read_models: ReadModels) -> BusinessSnapshot:
    return BusinessSnapshot(
        low_stock=await read_models.low_stock(),
        orders=await read_models.list("orders"),
        clients=await read_models.list("clients"),
        inventory=await read_models.list("inventory"),
        pricing=await read_models.current(),
    )


def _low_stock(snapshot: BusinessSnapshot) -> Optional[Prediction]:
    if not snapshot.low_stock:
        return None
    count = len(snapshot.low_stock)
    return Prediction(
        id="low_stock",
        kind=PredictionKind.ALERT,
        category="inventory",
        title=f"{count} product{'s' if count != 1 else ''} need reordering",
        description="Stock levels are below minimum threshold",
        prediction="Stockout likely within 7 days if not addressed",
        confidence=95,
        impact="high",
        action_ref="auto_reorder",
        action_label="Generate Reorder List",
    )


def _pending_orders(snapshot: BusinessSnapshot) -> Optional[Prediction]:
    pending = snapshot.pending_orders
    if len(pending) <= PENDING_ORDERS_ALERT_THRESHOLD:
        return None
    return Prediction(
        id="pending_orders",
        kind=PredictionKind.ALERT,
        category="orders",
        title=f"{len(pending)} orders awaiting processing",
        description="Orders have been pending for extended time",
        prediction="Customer satisfaction may decrease if not processed soon",
        confidence=88,
        impact="medium",
        action_ref="auto_process",
        action_label="Process Orders",
    )


def _pricing(snapshot: BusinessSnapshot) -> Optional[Prediction]:
    if not snapshot.pricing:
        return None
    return Prediction(
        id="pricing_opportunity",
        kind=PredictionKind.OPPORTUNITY,
        category="pricing",
        title="Pricing optimization available",
        description="AI detected potential margin improvements",
        prediction="Estimated 5-10% margin increase possible",
        confidence=82,
        impact="medium",
        action_ref="optimize_all_prices",
        action_label="Optimize Pricing",
    )


def _client_engagement(snapshot: BusinessSnapshot) -> Optional[Prediction]:
    if not snapshot.clients:
        return None
    return Prediction(
        id="client_engagement",
        kind=PredictionKind.RECOMMENDATION,
        category="clients",
        title="Client engagement analysis ready",
        description="Monthly client activity report available",
        prediction="Identify upsell opportunities and at-risk clients",
        confidence=90,
        impact="low",
        action_ref="upsell_opportunities",
        action_label="View Analysis",
    )


def _demand_forecast(snapshot: BusinessSnapshot) -> Optional[Prediction]:
    if not snapshot.inventory:
        return None
    return Prediction(
        id="demand_forecast",
        kind=PredictionKind.RECOMMENDATION,
        category="inventory",
        title="Demand forecast updated",
        description="AI has updated demand predictions for next month",
        prediction="Plan inventory accordingly to avoid stockouts",
        confidence=85,
        impact="medium",
        action_ref="forecast_demand",
        action_label="Forecast Demand",
    )


RULES: tuple[Callable[[BusinessSnapshot], Optional[Prediction]], ...] = (
    _low_stock,
    _pending_orders,
    _pricing,
    _client_engagement,
    _demand_forecast,
)


def aggregate(snapshot: BusinessSnapshot) -> list[Prediction]:
    """Evaluate every rule against ``snapshot`` in a fixed order."""
    predictions: list[Prediction] = []
    for rule in RULES:
        prediction = rule(snapshot)
        if prediction is not None:
            predictions.append(prediction)
    return predictions


class PredictionAggregator:
    """Recomputes predictions on demand and runs their quick actions."""

    def __init__(self, read_models: ReadModels, executor: ActionExecutor, notifications: NotificationChannel) -> None:
        self._read_models = read_models
        self._executor = executor
        self._notifications = notifications

    async def refresh(self) -> list[Prediction]:
        predictions = aggregate(await load_snapshot(self._read_models))
        logger.debug("Computed %d prediction(s)", len(predictions))
        return predictions

    async def run_quick_action(self, prediction_id: str) -> QuickActionResult:
        """Execute the catalog action a prediction points to.

        Raises ``LookupError`` when the prediction is not currently reported or
        has no runnable action, and :class:`ActionFailed` when execution fails.
        """
        prediction = next((p for p in await self.refresh() if p.id == prediction_id), None)
        action = get_action(prediction.action_ref) if prediction and prediction.action_ref else None
        if prediction is None or action is None:
            reason = "is not active" if prediction is None else "has no runnable action"
            self._notifications.error("This prediction is no longer actionable", source="predictions")
            raise LookupError(f"Prediction {prediction_id} {reason}")

        try:
            output = await self._executor.execute(action)
        except ActionFailed:
            self._notifications.error(f"{action.title} failed", source="predictions")
            raise
        self._notifications.success(f"{action.title} completed", source="predictions")
        return QuickActionResult(prediction=prediction, action_id=action.id, output=output)
