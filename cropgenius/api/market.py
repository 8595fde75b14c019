"""
Market API Endpoints
Live crop prices, price trends, the commodity board and organic opportunities
"""

from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends, Query

from cropgenius.core.errors import NotFoundError
from cropgenius.schemas.market import MarketBoard, MarketDataResponse, MarketTrend, OrganicOpportunity, OrganicPrice
from cropgenius.services.market_analytics import (
    ORGANIC_PRICES,
    crop_premium,
    market_alert,
    moving_average,
    top_opportunities,
)
from cropgenius.services.market_service import MarketService

router = APIRouter()


@lru_cache()
def get_market_service() -> MarketService:
    return MarketService()


@router.get("/prices", response_model=MarketDataResponse)
async def get_prices(
    crop: str = Query(..., min_length=2),
    region: str = Query("kenya"),
    service: MarketService = Depends(get_market_service),
):
    """Latest prices: live exchanges, then cached rows, then reference prices"""
    return await service.live_prices(crop, region.lower())


@router.get("/trends", response_model=MarketTrend)
async def get_trends(
    crop: str = Query(..., min_length=2),
    region: str = Query("kenya"),
    days: int = Query(30, ge=1, le=365),
    service: MarketService = Depends(get_market_service),
):
    return service.trends(crop, region.lower(), days)


@router.get("/trends/moving-average")
async def get_moving_average(
    crop: str = Query(..., min_length=2),
    region: str = Query("kenya"),
    days: int = Query(30, ge=1, le=365),
    window: int = Query(7, ge=2, le=60),
    service: MarketService = Depends(get_market_service),
):
    trend = service.trends(crop, region.lower(), days)
    history = [{"date_recorded": p["date"], "price": p["price"]} for p in trend["historical_data"]]
    return {"crop": crop, "window": window, "points": moving_average(history, window)}


@router.get("/board/{commodity}", response_model=MarketBoard)
async def get_market_board(commodity: str, service: MarketService = Depends(get_market_service)):
    """Dashboard summary for one commodity"""
    board = service.board(commodity)
    if board is None:
        raise NotFoundError(f"No market data for {commodity}")
    return board


@router.get("/organic/prices", response_model=List[OrganicPrice])
async def get_organic_prices():
    return ORGANIC_PRICES


@router.get("/organic/opportunities", response_model=List[OrganicOpportunity])
async def get_organic_opportunities():
    return top_opportunities()


@router.get("/organic/{crop}")
async def get_organic_outlook(crop: str):
    return {"crop": crop, "premium": crop_premium(crop), "alert": market_alert(crop)}
