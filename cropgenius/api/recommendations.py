"""
Crop Recommendations API Endpoints
Ranked crops for a field and the crop-planning chat agent
"""

from functools import lru_cache

from fastapi import APIRouter, Depends, Query

from cropgenius.core.auth import require_auth
from cropgenius.core.errors import ValidationError
from cropgenius.schemas.recommendations import (
    RecommendationChatReply,
    RecommendationChatRequest,
    RecommendationRequest,
    RecommendationResult,
)
from cropgenius.services.recommendations_service import CropRecommendationService

router = APIRouter()


@lru_cache()
def get_recommendation_service() -> CropRecommendationService:
    return CropRecommendationService()


@router.post("/crops", response_model=RecommendationResult, response_model_exclude_none=True)
async def recommend_crops(
    body: RecommendationRequest,
    current_user: dict = Depends(require_auth),
    service: CropRecommendationService = Depends(get_recommendation_service),
):
    """
    Rank crops for one of the farmer's fields, or for ad-hoc field data.

    **Requires authentication**
    """
    if not body.field_id and body.field_data is None:
        raise ValidationError("Field ID or field data is required")
    return service.recommend(
        current_user["id"],
        field_id=body.field_id,
        field_data=body.field_data,
        include_market_data=body.include_market_data,
        include_disease_risk=body.include_disease_risk,
        max_recommendations=body.max_recommendations,
    )


@router.get("/field/{field_id}", response_model=RecommendationResult, response_model_exclude_none=True)
async def recommend_for_field(
    field_id: str,
    limit: int = Query(5, ge=1, le=6),
    current_user: dict = Depends(require_auth),
    service: CropRecommendationService = Depends(get_recommendation_service),
):
    return service.recommend(current_user["id"], field_id=field_id, max_recommendations=limit)


@router.post("/chat", response_model=RecommendationChatReply, response_model_exclude_none=True)
async def recommendation_chat(
    body: RecommendationChatRequest,
    current_user: dict = Depends(require_auth),
    service: CropRecommendationService = Depends(get_recommendation_service),
):
    """Answer a crop-planning question (what, when, rotation, profit, suitability)"""
    return service.chat(
        current_user["id"],
        body.message,
        field_id=body.field_id,
        location=body.location.model_dump(exclude_none=True) if body.location else None,
        soil_type=body.soil_type,
        current_crops=body.current_crops,
        current_season=body.current_season,
    )
