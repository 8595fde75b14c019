"""
Satellite API Endpoints
NDVI field health analysis from Sentinel-2
"""

from functools import lru_cache

from fastapi import APIRouter, Depends

from cropgenius.core.auth import require_auth
from cropgenius.schemas.satellite import SatelliteAnalysis, SatelliteRequest
from cropgenius.services.satellite_service import SatelliteService

router = APIRouter()


@lru_cache()
def get_satellite_service() -> SatelliteService:
    return SatelliteService()


@router.post("/analyze", response_model=SatelliteAnalysis)
async def analyze_field(
    body: SatelliteRequest,
    current_user: dict = Depends(require_auth),
    service: SatelliteService = Depends(get_satellite_service),
):
    """Analyse a field by id or by its boundary coordinates"""
    return await service.analyze(
        coordinates=[c.model_dump() for c in body.coordinates],
        field_id=body.field_id,
        user_id=current_user["id"],
        days=body.days,
    )
