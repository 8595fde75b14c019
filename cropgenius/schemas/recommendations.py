"""Pydantic schemas for crop recommendations"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Literal


class RecommendationRequest(BaseModel):
    field_id: Optional[str] = None
    field_data: Optional[Dict] = None
    include_market_data: bool = True
    include_disease_risk: bool = True
    max_recommendations: int = Field(5, ge=1, le=6)


class SuitabilityFactors(BaseModel):
    soil: int
    climate: int
    water: int
    market: int


class EconomicViability(BaseModel):
    profitability_score: int
    investment_required: float
    expected_revenue: int


class DiseaseRisk(BaseModel):
    level: Literal["low", "medium", "high"]
    common_diseases: List[str]


class MarketOutlook(BaseModel):
    current_price: float
    price_trend: Literal["rising", "stable", "falling"]
    demand_level: Literal["low", "medium", "high"]


class PlantingWindow(BaseModel):
    start: str
    end: str
    optimal: str


class ExpectedYield(BaseModel):
    min: int
    max: int
    unit: str = "kg/ha"


class CropRecommendation(BaseModel):
    name: str
    confidence: int
    description: str
    rotation_benefit: Optional[str] = None
    suitability_factors: SuitabilityFactors
    economic_viability: EconomicViability
    disease_risk: Optional[DiseaseRisk] = None
    market_outlook: Optional[MarketOutlook] = None
    planting_window: PlantingWindow
    expected_yield: ExpectedYield
    growing_period_days: int


class RecommendationMetadata(BaseModel):
    field_id: Optional[str] = None
    user_id: str
    region: str
    climate_zone: str
    soil_type: str
    elevation: float
    generated_at: str
    version: str


class RecommendationResult(BaseModel):
    crops: List[CropRecommendation]
    metadata: RecommendationMetadata


class ChatLocation(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    country: Optional[str] = None
    region: Optional[str] = None


class RecommendationChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    field_id: Optional[str] = None
    location: Optional[ChatLocation] = None
    soil_type: Optional[str] = None
    current_crops: List[str] = []
    current_season: Optional[str] = None


class RecommendationChatReply(BaseModel):
    content: str
    intent: str
    confidence: float
    agent_type: str = "crop_recommendations"
    recommendations: List[CropRecommendation]
