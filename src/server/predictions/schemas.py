from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from src.orchestration.predictions import Prediction


class PredictionItem(BaseModel):
    id: str
    kind: str
    category: str
    title: str
    description: str
    prediction: str
    confidence: int
    impact: str
    action_ref: Optional[str] = None
    action_label: Optional[str] = None

    @classmethod
    def from_prediction(cls, prediction: Prediction) -> "PredictionItem":
        return cls(
            id=prediction.id,
            kind=prediction.kind.value,
            category=prediction.category,
            title=prediction.title,
            description=prediction.description,
            prediction=prediction.prediction,
            confidence=prediction.confidence,
            impact=prediction.impact,
            action_ref=prediction.action_ref,
            action_label=prediction.action_label,
        )


class PredictionListResponse(BaseModel):
    predictions: list[PredictionItem]


class QuickActionResponse(BaseModel):
    prediction_id: str
    action_id: str
    output: str
