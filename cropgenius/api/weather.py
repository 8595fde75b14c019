"""
Weather API Endpoints
Current conditions, forecasts, farm actions and the weather advisor
"""

from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from cropgenius.core.auth import optional_auth, require_auth
from cropgenius.schemas.weather import AdviceRequest, AgentReply, FieldWeather, WeatherAction, WeatherReport
from cropgenius.services.weather_advisor import WeatherAdvisor
from cropgenius.services.weather_service import DEFAULT_LAT, DEFAULT_LON, WeatherService

router = APIRouter()


@lru_cache()
def get_weather_service() -> WeatherService:
    return WeatherService()


def get_weather_advisor(service: WeatherService = Depends(get_weather_service)) -> WeatherAdvisor:
    return WeatherAdvisor(service)


@router.get("/current", response_model=WeatherReport)
async def get_weather(
    lat: float = Query(DEFAULT_LAT, ge=-90, le=90),
    lon: float = Query(DEFAULT_LON, ge=-180, le=180),
    current_user: Optional[dict] = Depends(optional_auth),
    service: WeatherService = Depends(get_weather_service),
):
    """Current conditions and a 7 day forecast (falls back to demo data)"""
    user_id = current_user["id"] if current_user else None
    return await service.by_coordinates(lat, lon, user_id)


@router.get("/field/{field_id}", response_model=FieldWeather)
async def get_field_weather(
    field_id: str,
    current_user: dict = Depends(require_auth),
    service: WeatherService = Depends(get_weather_service),
):
    return await service.for_field(field_id, current_user["id"])


@router.get("/actions", response_model=List[WeatherAction])
async def get_weather_actions(
    lat: float = Query(DEFAULT_LAT, ge=-90, le=90),
    lon: float = Query(DEFAULT_LON, ge=-180, le=180),
    service: WeatherService = Depends(get_weather_service),
):
    """Farm actions suggested by today's weather"""
    return await service.actions(lat, lon)


@router.post("/advice", response_model=AgentReply)
async def weather_advice(
    body: AdviceRequest,
    current_user: dict = Depends(require_auth),
    advisor: WeatherAdvisor = Depends(get_weather_advisor),
):
    return await advisor.reply(
        body.message,
        lat=body.latitude,
        lon=body.longitude,
        crops=body.crop_types,
        soil_type=body.soil_type,
    )
