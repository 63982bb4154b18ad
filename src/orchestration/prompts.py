from __future__ import annotations

import json
from typing import Any, Mapping

from .visualization import SENTINEL

COMPANY = "Matsu Matcha"

CONTEXT_PROMPTS: dict[str, str] = {
    "clients": (
        f"You are an AI assistant specialized in B2B client management for {COMPANY}. Help analyze client "
        "relationships, suggest pricing strategies, identify growth opportunities, and recommend retention "
        "strategies. Focus on client-specific insights."
    ),
    "suppliers": (
        f"You are an AI assistant specialized in supplier management for {COMPANY}. Help evaluate suppliers, "
        "compare costs and quality, analyze lead times, and suggest optimal ordering strategies. Focus on "
        "supplier performance and relationships."
    ),
    "products": (
        f"You are an AI assistant specialized in product management for {COMPANY}. Help analyze product "
        "performance, suggest pricing adjustments, identify best-sellers and slow movers, and recommend "
        "inventory levels. Focus on matcha product insights."
    ),
    "pricing": (
        f"You are an AI assistant specialized in pricing strategy for {COMPANY}. Help optimize pricing, "
        "calculate margins, analyze profitability scenarios, and suggest competitive pricing. Provide "
        "specific calculations and what-if analyses."
    ),
    "inventory": (
        f"You are an AI assistant specialized in inventory management for {COMPANY}. Help forecast demand, "
        "identify low stock items, suggest reorder quantities and timing, and optimize inventory levels. "
        "Focus on supply chain efficiency."
    ),
    "orders": (
        f"You are an AI assistant specialized in order management for {COMPANY}. Help analyze order "
        "patterns, identify trends, suggest fulfillment optimizations, and forecast future orders. Focus on "
        "order processing efficiency."
    ),
    "analytics": (
        f"You are an AI assistant specialized in business analytics for {COMPANY}. Help understand business "
        "metrics, identify trends, create insights, and provide actionable recommendations. Focus on "
        "data-driven decision making."
    ),
    "general": (
        f"You are an AI assistant for {COMPANY}, a B2B matcha distribution company. Help with any business "
        "questions, provide insights, and offer recommendations to improve operations."
    ),
}

SUGGESTED_QUESTIONS: dict[str, tuple[str, ...]] = {
    "clients": (
        "Which clients have the highest profit margins?",
        "Suggest pricing strategies for my top clients",
        "Identify clients at risk of churning",
        "What products should I recommend to each client?",
    ),
    "suppliers": (
        "Compare my suppliers by cost efficiency",
        "Which supplier has the best lead times?",
        "Suggest optimal order quantities per supplier",
        "Analyze supplier reliability and quality",
    ),
    "products": (
        "Which products have the best margins?",
        "Suggest products to discontinue or promote",
        "Analyze seasonal product trends",
        "Recommend pricing adjustments for each product",
    ),
    "pricing": (
        "What if I increase prices by 10%?",
        "Calculate optimal margins for each product",
        "Compare my pricing to market rates",
        "Suggest discount strategies for bulk orders",
    ),
    "inventory": (
        "Which items need to be reordered soon?",
        "Forecast inventory levels for next 3 months",
        "Identify slow-moving inventory",
        "Suggest optimal stock levels per SKU",
    ),
    "orders": (
        "Analyze order patterns by client",
        "Predict next month's order volume",
        "Identify peak ordering periods",
        "Suggest order fulfillment optimizations",
    ),
    "analytics": (
        "Summarize this month's business performance",
        "What are my top growth opportunities?",
        "Compare this quarter to last quarter",
        "Identify areas for cost reduction",
    ),
    "general": (
        "How is my business performing overall?",
        "What should I focus on this week?",
        "Identify my biggest challenges",
        "Suggest ways to increase profitability",
    ),
}

SCENARIO_KEYWORDS = (
    "what if",
    "what-if",
    "scenario",
    "impact",
    "change price",
    "increase",
    "decrease",
    "margin",
    "forecast",
    "projection",
    "compare",
    "analysis",
)

VISUALIZATION_INSTRUCTIONS = f"""IMPORTANT: The user is asking a what-if scenario question. You MUST include a visualization block in your response using the following JSON format wrapped in {SENTINEL} tags:

{SENTINEL}
{{
  "type": "pricing" | "margin" | "forecast" | "breakdown" | "comparison",
  "title": "Chart Title",
  "data": {{
    // For pricing scenarios:
    "currentPrice": number, "currentMargin": number (percentage), "currentVolume": number,
    "productName": "string", "currency": "USD"
    // For margin comparisons:
    "products": [{{ "name": "string", "currentMargin": number, "suggestedMargin": number, "revenue": number }}]
    // For forecasts:
    "forecastData": [{{ "month": "Jan", "actual": number, "forecast": number, "reorderPoint": number }}],
    "productName": "string", "unit": "kg"
    // For breakdowns:
    "breakdown": [{{ "category": "string", "value": number, "percentage": number }}],
    "total": number, "currency": "USD"
  }}
}}
{SENTINEL}

Always provide realistic sample data based on the business context. Use actual product names, realistic prices, and margins when available."""

SUGGESTION_PROMPT = (
    f"You are a helpful AI assistant for {COMPANY}. Provide a brief, actionable suggestion "
    "(2-3 sentences max) based on the context: {context}. Be specific and practical."
)


def is_scenario_question(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in SCENARIO_KEYWORDS)


def suggested_questions(context: str) -> tuple[str, ...]:
    return SUGGESTED_QUESTIONS.get(context, SUGGESTED_QUESTIONS["general"])


def build_system_prompt(context: str, business_context: Mapping[str, Any], message: str) -> str:
    def _count(key: str) -> int:
        return len(business_context.get(key) or [])

    summary = {
        key: list(business_context.get(key) or [])[:3]
        for key in ("suppliers", "clients", "skus", "pricing", "inventory")
    }
    sections = [
        CONTEXT_PROMPTS.get(context, CONTEXT_PROMPTS["general"]),
        "Current Business Context:\n"
        f"- Total Suppliers: {_count('suppliers')}\n"
        f"- Total Clients: {_count('clients')}\n"
        f"- Total Products: {_count('skus')}\n"
        f"- Low Stock Alerts: {_count('lowStockAlerts')}",
        "Business Data Summary:\n" + json.dumps(summary, ensure_ascii=False, indent=2, default=str),
    ]
    if is_scenario_question(message):
        sections.append(VISUALIZATION_INSTRUCTIONS)
    sections.append(
        "Provide helpful, concise, and actionable responses. Use specific numbers and data when "
        "available. Format responses with markdown for readability."
    )
    return "\n\n".join(sections)
