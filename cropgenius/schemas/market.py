"""Pydantic schemas for market prices and the market board"""

from pydantic import BaseModel
from typing import Optional, List, Literal

Trend = Literal["up", "down", "stable"]


class MarketPrice(BaseModel):
    crop_name: str
    price: float
    currency: str = "KES"
    location: str
    market_name: str
    date_recorded: str
    source: str
    quality_grade: Optional[str] = "Standard"
    unit: str = "per bag"
    trend: Trend = "stable"
    change_percentage: float = 0.0


class MarketDataResponse(BaseModel):
    success: bool = True
    data: List[MarketPrice]
    source: Literal["live", "cached", "static"]
    last_updated: str
    error: Optional[str] = None


class PricePoint(BaseModel):
    date: str
    price: float


class MarketTrend(BaseModel):
    current_price: float
    average_price: float
    trend: Trend
    change_percentage: float
    historical_data: List[PricePoint] = []


class TopMarket(BaseModel):
    name: str
    price: float
    change: float
    volume: float


class HistoricalPoint(BaseModel):
    date: str
    price: float
    volume: float


class MarketBoard(BaseModel):
    commodity: str
    current_price: float
    price_change: float
    price_change_percent: float
    volume: float
    high_24h: float
    low_24h: float
    trend: Literal["up", "down"]
    market_cap: str
    top_markets: List[TopMarket]
    historical: List[HistoricalPoint]


class OrganicOpportunity(BaseModel):
    crop: str
    action: str
    profit: int
    urgency: Literal["high", "medium"]
    reason: str


class OrganicPrice(BaseModel):
    crop: str
    conventional: float
    organic: float
    premium: int
    trend: Trend
    demand: Literal["high", "medium", "low"]
