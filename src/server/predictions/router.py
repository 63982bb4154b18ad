from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from src.orchestration.errors import ActionFailed
from src.orchestration.predictions import PredictionAggregator
from src.server.dependencies import get_prediction_aggregator

from .schemas import PredictionItem, PredictionListResponse, QuickActionResponse

router = APIRouter(prefix="/api/predictions", tags=["predictions"])


@router.get("", response_model=PredictionListResponse)
async def list_predictions(
    aggregator: PredictionAggregator = Depends(get_prediction_aggregator),
) -> PredictionListResponse:
    predictions = await aggregator.refresh()
    return PredictionListResponse(predictions=[PredictionItem.from_prediction(item) for item in predictions])


@router.post("/{prediction_id}/run", response_model=QuickActionResponse)
async def run_prediction_action(
    prediction_id: str,
    aggregator: PredictionAggregator = Depends(get_prediction_aggregator),
) -> QuickActionResponse:
    try:
        result = await aggregator.run_quick_action(prediction_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ActionFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.reason) from exc
    return QuickActionResponse(prediction_id=result.prediction.id, action_id=result.action_id, output=result.output)
