"""Pydantic schemas for weather data and advice"""

from pydantic import BaseModel
from typing import Optional, List, Literal


class WeatherCurrent(BaseModel):
    temperature: int
    feels_like: Optional[int] = None
    humidity: int
    pressure: Optional[int] = None
    wind_speed: int
    wind_direction: str
    visibility: float
    uv_index: int
    condition: str
    description: str
    icon: Optional[str] = None
    rainfall: float = 0.0


class DailyForecast(BaseModel):
    date: str
    temp_min: int
    temp_max: int
    humidity: int
    condition: str
    description: str
    rain_probability: int
    rainfall: float = 0.0
    wind_speed: int


class WeatherReport(BaseModel):
    location: str
    latitude: float
    longitude: float
    current: WeatherCurrent
    forecast: List[DailyForecast]
    data_source: Literal["api", "cache", "demo"]
    last_updated: str


class FieldWeather(WeatherReport):
    field_id: str
    field_name: str


class WeatherAction(BaseModel):
    action: str
    reason: str
    urgency: Literal["high", "medium", "low"]
    best_time: str


class AdviceRequest(BaseModel):
    message: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    crop_types: List[str] = []
    soil_type: Optional[str] = None


class AgentReply(BaseModel):
    content: str
    intent: str
    risk_level: Optional[Literal["LOW", "MODERATE", "HIGH"]] = None
    confidence: float
    agent_type: str = "weather"
