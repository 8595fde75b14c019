"""Pydantic schemas for yield prediction"""

from datetime import date

from pydantic import BaseModel, Field
from typing import Optional, List, Literal


class GeoPoint(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class SoilData(BaseModel):
    ph: Optional[float] = None
    organic_matter: Optional[float] = None
    nitrogen: Optional[float] = None
    phosphorus: Optional[float] = None
    potassium: Optional[float] = None


class YieldPredictionRequest(BaseModel):
    crop_type: Optional[str] = None
    planting_date: date
    farm_size_ha: Optional[float] = Field(None, gt=0)
    field_id: Optional[str] = None
    location: Optional[GeoPoint] = None
    soil_type: Optional[str] = None
    soil_data: Optional[SoilData] = None
    expected_rainfall: Optional[str] = None
    fertilizer_use: Optional[str] = None
    previous_yield: Optional[float] = Field(None, ge=0)


class KeyFactors(BaseModel):
    weather_impact: str
    soil_impact: str
    health_impact: str
    management_impact: str


class EconomicImpact(BaseModel):
    estimated_revenue_usd: int
    market_trend: Literal["rising", "steady", "falling"]
    market_trend_percentage: str


class YieldPrediction(BaseModel):
    id: Optional[str] = None
    field_id: Optional[str] = None
    crop_type: str
    farm_size_ha: float
    planting_date: str
    predicted_yield_kg: float
    predicted_yield_kg_per_ha: float
    confidence_score: float
    key_factors: KeyFactors
    recommendations: List[str]
    risk_factors: List[str] = []
    harvest_date_estimate: str
    prediction_date: str
    economic_impact: EconomicImpact
    location: Optional[GeoPoint] = None
    source: Literal["gemini", "fallback"]
    processing_time_ms: int
