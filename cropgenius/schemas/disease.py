"""Pydantic schemas for crop disease scans"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal


class GeoLocation(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    country: Optional[str] = None
    region: Optional[str] = None


class DiagnoseRequest(BaseModel):
    image_base64: str
    crop_type: str
    location: GeoLocation


class EconomicImpact(BaseModel):
    yield_loss_percentage: float = 0
    revenue_loss_usd: float = 0
    treatment_cost_usd: float = 0


class DiseaseDiagnosis(BaseModel):
    disease_name: str
    scientific_name: Optional[str] = None
    confidence: float
    severity: Literal["low", "medium", "high", "critical"]
    affected_area_percentage: float
    crop_type: str
    symptoms: List[str]
    immediate_actions: List[str]
    preventive_measures: List[str]
    organic_solutions: List[str]
    inorganic_solutions: List[str]
    recommended_products: List[str]
    economic_impact: EconomicImpact
    spread_risk: Literal["low", "medium", "high"]
    recovery_timeline: str
    source_api: str = "gemini"
    processing_time_ms: int = 0
    timestamp: str
    cached: bool = False


class IdentifyRequest(BaseModel):
    image_base64: str
    crop_type: Optional[str] = None


class PlantIdentification(BaseModel):
    scientific_name: str
    common_names: List[str]
    family: Optional[str] = None
    genus: Optional[str] = None
    confidence: int
    disease_name: str
    severity: Literal["low", "medium", "high"]
    treatment: str
