"""OpenWeather 2.5 client (current conditions and 5 day / 3 hour forecast)"""

from typing import Dict

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import ConfigurationError, WeatherDataError
from cropgenius.core.settings import settings

OPENWEATHER_BASE_URL = "https://api.openweathermap.org/data/2.5"


class OpenWeatherClient(APIClient):
    service_name = "openweather"
    error_class = WeatherDataError

    def __init__(self, api_key: str = None, **kwargs):
        super().__init__(OPENWEATHER_BASE_URL, **kwargs)
        self.api_key = api_key if api_key is not None else settings.OPENWEATHER_API_KEY

    def _params(self, lat: float, lon: float) -> Dict:
        if not self.api_key:
            raise ConfigurationError("OPENWEATHER_API_KEY not configured")
        return {"lat": lat, "lon": lon, "appid": self.api_key, "units": "metric"}

    async def current(self, lat: float, lon: float) -> Dict:
        return await self.get_json("/weather", params=self._params(lat, lon))

    async def forecast(self, lat: float, lon: float) -> Dict:
        return await self.get_json("/forecast", params=self._params(lat, lon))
