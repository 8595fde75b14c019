"""
Disease API Endpoints
Crop disease diagnosis, plant identification and scan history
"""

from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, Query

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.disease import DiagnoseRequest, DiseaseDiagnosis, IdentifyRequest, PlantIdentification
from cropgenius.services.disease_service import DiseaseService

router = APIRouter()


@lru_cache()
def get_disease_service() -> DiseaseService:
    return DiseaseService()


@router.post("/diagnose", response_model=DiseaseDiagnosis)
async def diagnose(
    body: DiagnoseRequest,
    current_user: dict = Depends(require_auth),
    service: DiseaseService = Depends(get_disease_service),
):
    """
    Diagnose a crop photo with Gemini vision.
    Identical photos for the same crop and place are answered from a 24h cache.
    """
    return await service.diagnose(
        body.image_base64,
        body.crop_type,
        body.location.lat,
        body.location.lng,
        user_id=current_user["id"],
    )


@router.post("/identify", response_model=List[PlantIdentification])
async def identify(
    body: IdentifyRequest,
    current_user: dict = Depends(require_auth),
    service: DiseaseService = Depends(get_disease_service),
):
    return await service.identify_plant(body.image_base64)


@router.get("/history")
async def scan_history(
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_auth),
    service: DiseaseService = Depends(get_disease_service),
):
    return prepare_response(service.history(current_user["id"], limit), id_fields=["id"])


@router.get("/cache/status")
async def cache_status(service: DiseaseService = Depends(get_disease_service)):
    return service.cache_status()
