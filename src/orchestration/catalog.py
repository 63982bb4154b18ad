from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(slots=True, frozen=True)
class ActionDescriptor:
    id: str
    title: str
    description: str
    domain: str
    operation_type: str
    priority: Priority = Priority.MEDIUM


def _action(
    domain: str,
    action_id: str,
    title: str,
    description: str,
    operation_type: str,
    priority: Priority = Priority.MEDIUM,
) -> ActionDescriptor:
    return ActionDescriptor(
        id=action_id,
        title=title,
        description=description,
        domain=domain,
        operation_type=operation_type,
        priority=priority,
    )


CATALOG: dict[str, tuple[ActionDescriptor, ...]] = {
    "inventory": (
        _action(
            "inventory",
            "auto_reorder",
            "Auto-Generate Reorder List",
            "AI creates optimal reorder quantities for low stock items",
            "inventory_reorder",
            Priority.HIGH,
        ),
        _action(
            "inventory",
            "optimize_stock",
            "Optimize Stock Levels",
            "AI suggests optimal stock levels based on demand patterns",
            "inventory_optimization",
        ),
        _action(
            "inventory",
            "forecast_demand",
            "Forecast Demand",
            "AI predicts future demand for selected products",
            "demand_forecast",
        ),
    ),
    "pricing": (
        _action(
            "pricing",
            "optimize_all_prices",
            "Optimize All Prices",
            "AI analyzes and suggests optimal prices for all products",
            "pricing_optimization",
            Priority.HIGH,
        ),
        _action(
            "pricing",
            "competitive_analysis",
            "Competitive Analysis",
            "AI compares your prices with market rates",
            "competitive_analysis",
        ),
        _action(
            "pricing",
            "margin_optimization",
            "Margin Optimization",
            "AI identifies products with suboptimal margins",
            "margin_optimization",
        ),
    ),
    "clients": (
        _action(
            "clients",
            "segment_clients",
            "Auto-Segment Clients",
            "AI categorizes clients by value and behavior",
            "client_segmentation",
            Priority.LOW,
        ),
        _action(
            "clients",
            "upsell_opportunities",
            "Find Upsell Opportunities",
            "AI identifies clients ready for premium products",
            "client_upsell",
        ),
        _action(
            "clients",
            "churn_prediction",
            "Predict Churn Risk",
            "AI identifies clients at risk of leaving",
            "churn_prediction",
            Priority.HIGH,
        ),
    ),
    "orders": (
        _action(
            "orders",
            "auto_process",
            "Auto-Process Orders",
            "AI validates and processes pending orders",
            "order_processing",
            Priority.HIGH,
        ),
        _action(
            "orders",
            "optimize_fulfillment",
            "Optimize Fulfillment",
            "AI suggests optimal fulfillment sequence",
            "fulfillment_optimization",
        ),
        _action(
            "orders",
            "predict_delays",
            "Predict Delays",
            "AI identifies orders at risk of delay",
            "delay_prediction",
        ),
    ),
    "suppliers": (
        _action(
            "suppliers",
            "supplier_consolidation",
            "Supplier Analysis",
            "Analyze supplier performance and consolidation opportunities",
            "supplier_consolidation",
            Priority.LOW,
        ),
    ),
}


def actions_for(domain: str) -> tuple[ActionDescriptor, ...]:
    """Return the invocable actions of ``domain`` in display order."""
    return CATALOG.get(domain, ())


def domains() -> tuple[str, ...]:
    return tuple(CATALOG)


def get_action(action_id: str, domain: Optional[str] = None) -> Optional[ActionDescriptor]:
    """Look an action up by id, within ``domain`` when given, else across the catalog."""
    candidates = actions_for(domain) if domain is not None else (
        action for group in CATALOG.values() for action in group
    )
    for action in candidates:
        if action.id == action_id:
            return action
    return None


def find_by_operation(operation_type: str) -> Optional[ActionDescriptor]:
    for group in CATALOG.values():
        for action in group:
            if action.operation_type == operation_type:
                return action
    return None


ANALYST_SYSTEM_PROMPT = (
    "You are a strategic business analyst AI for Matsu Matcha. Provide comprehensive "
    "recommendations in a structured format with specific numbers and actionable steps. "
    "Use markdown tables where appropriate."
)


def _dump(value: Any) -> str:
    return json.dumps(value if value is not None else [], ensure_ascii=False, default=str)


def prompt_for(operation_type: str, business_context: Mapping[str, Any]) -> str:
    """Build the analysis prompt sent to the AI collaborator for one operation."""
    skus = business_context.get("skus")
    if operation_type == "pricing_optimization":
        return (
            "Analyze all products and suggest pricing optimizations to improve margins. "
            "For each product, provide: current price, suggested price, expected margin "
            "improvement, and reasoning.\n\n"
            f"Products: {_dump(skus)}\nPricing: {_dump(business_context.get('pricing'))}"
        )
    if operation_type == "inventory_reorder":
        return (
            "Analyze inventory levels and suggest reorder quantities and timing for each "
            "product. Consider lead times, current stock, and demand patterns.\n\n"
            f"Inventory: {_dump(business_context.get('inventory'))}\nProducts: {_dump(skus)}\n"
            f"Suppliers: {_dump(business_context.get('suppliers'))}"
        )
    if operation_type == "client_upsell":
        return (
            "Analyze each client's purchase history and suggest upsell opportunities. "
            "Recommend higher-margin or premium products that match their preferences.\n\n"
            f"Clients: {_dump(business_context.get('clients'))}\n"
            f"Orders: {_dump(business_context.get('recentOrders'))}\nProducts: {_dump(skus)}"
        )
    if operation_type == "supplier_consolidation":
        return (
            "Analyze supplier relationships and suggest consolidation opportunities to reduce "
            "costs and improve efficiency.\n\n"
            f"Suppliers: {_dump(business_context.get('suppliers'))}\nProducts by supplier: {_dump(skus)}"
        )

    action = find_by_operation(operation_type)
    goal = action.description if action else operation_type.replace("_", " ")
    return (
        f"Task: {goal}.\nProvide specific, actionable recommendations with numbers and "
        "calculations.\n\n"
        f"Business data: {_dump(dict(business_context))}"
    )
