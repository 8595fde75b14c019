"""
Yield Prediction API Endpoints
"""

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.yield_prediction import YieldPrediction, YieldPredictionRequest
from cropgenius.services.yield_service import YieldPredictionService

router = APIRouter()


@lru_cache()
def get_yield_service() -> YieldPredictionService:
    return YieldPredictionService()


@router.post("/predict", response_model=YieldPrediction)
async def predict_yield(
    body: YieldPredictionRequest,
    current_user: dict = Depends(require_auth),
    service: YieldPredictionService = Depends(get_yield_service),
):
    """
    Predict the season's harvest. Missing size, location or crop are read from `field_id`.

    **Requires authentication**
    """
    result = await service.predict(current_user["id"], body.model_dump(exclude_none=True))
    return prepare_response(result, id_fields=["id", "field_id"])


@router.get("/predictions")
async def list_predictions(
    field_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_auth),
    service: YieldPredictionService = Depends(get_yield_service),
):
    return prepare_response(service.history(current_user["id"], field_id, limit), id_fields=["id", "field_id"])
