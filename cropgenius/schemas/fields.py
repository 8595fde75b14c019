"""Pydantic schemas for fields and the field creation wizard"""

from pydantic import BaseModel
from typing import Optional, List, Dict, Literal

from cropgenius.schemas.satellite import Coordinate


class FieldCreate(BaseModel):
    name: str
    size: Optional[float] = None
    size_unit: Literal["hectares", "acres"] = "hectares"
    crop_type: Optional[str] = None
    soil_type: Optional[str] = None
    irrigation_type: Optional[str] = None
    location: Optional[Coordinate] = None
    boundary: Optional[List[Coordinate]] = None
    location_description: Optional[str] = None
    planting_date: Optional[str] = None
    farm_id: Optional[str] = None


class FieldUpdate(BaseModel):
    name: Optional[str] = None
    size: Optional[float] = None
    size_unit: Optional[Literal["hectares", "acres"]] = None
    crop_type: Optional[str] = None
    soil_type: Optional[str] = None
    irrigation_type: Optional[str] = None
    location_description: Optional[str] = None
    planting_date: Optional[str] = None


class WizardUpdate(BaseModel):
    step: int
    data: Dict = {}


class WizardStart(BaseModel):
    default_location: Optional[Coordinate] = None


class FieldDraft(BaseModel):
    user_id: str
    step: int = 1
    data: Dict = {}
    completed_steps: List[int] = []
    skipped_steps: List[int] = []
    progress: float = 0.0
    updated_at: Optional[str] = None
