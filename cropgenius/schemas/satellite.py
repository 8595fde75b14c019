"""Pydantic schemas for satellite field analysis"""

from pydantic import BaseModel
from typing import Optional, List, Literal


class Coordinate(BaseModel):
    lat: float
    lng: float


class SatelliteRequest(BaseModel):
    field_id: Optional[str] = None
    coordinates: List[Coordinate] = []
    days: int = 14


class FieldBounds(BaseModel):
    north: float
    south: float
    east: float
    west: float

    def bbox(self) -> List[float]:
        return [self.west, self.south, self.east, self.north]


class NdviPoint(BaseModel):
    date: str
    ndvi: float


class ProblemArea(BaseModel):
    date: str
    lat: float
    lng: float
    ndvi: float
    severity: Literal["medium", "high"]
    issue: str


class SatelliteAnalysis(BaseModel):
    field_id: Optional[str] = None
    ndvi: float
    health_score: float
    bounds: FieldBounds
    ndvi_history: List[NdviPoint]
    problem_areas: List[ProblemArea]
    recommendations: List[str]
    image_url: Optional[str] = None
    analysis_date: str
    data_source: str = "Sentinel-2 L2A"
