"""
Weather for farms and fields
OpenWeather data with a short-lived cache and demo data as the last resort
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pandas as pd

from cropgenius.clients.openweather import OpenWeatherClient
from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import NotFoundError
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

DEFAULT_LAT = -1.2921
DEFAULT_LON = 36.8219

COMPASS_POINTS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]

# Keyword -> (hour test, message when now is good, message otherwise)
TIMING_RULES = [
    ("spray", lambda h: 6 <= h <= 9 or 16 <= h <= 18, "Now (calm, cool hours)", "Early morning 6-9 AM or late afternoon 4-6 PM"),
    ("water", lambda h: 5 <= h <= 8 or 17 <= h <= 19, "Now (low evaporation)", "Early morning 5-8 AM or evening 5-7 PM"),
    ("mulch", lambda h: h < 10, "Now, before the midday heat", "Early tomorrow morning"),
    ("fertiliz", lambda h: 6 <= h <= 10, "Now (before the heat)", "Early morning 6-10 AM"),
    ("drain", lambda h: True, "Immediately", "Immediately"),
]


def wind_direction(degrees: Optional[float]) -> str:
    if degrees is None:
        return "N"
    index = int(round((degrees % 360) / 22.5)) % 16
    return COMPASS_POINTS[index]


def estimate_uv_index(lat: float, when: datetime) -> int:
    uv = 3
    if abs(lat) < 30:
        uv += 2
    if 10 <= when.hour <= 16:
        uv += 2
    # 0-based month index, April..August
    if 4 <= when.month - 1 <= 8:
        uv += 1
    return min(uv, 11)


def location_name(lat: float, lon: float) -> str:
    if -1.5 <= lat <= 1.5 and 33.5 <= lon <= 42:
        if lat < -1.0:
            return "Nairobi Region"
        if lat < 0.5:
            return "Central Kenya"
        return "Northern Kenya"
    return "East Africa"


def process_current(payload: Dict, lat: float, now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now(timezone.utc)
    main = payload.get("main") or {}
    wind = payload.get("wind") or {}
    weather = (payload.get("weather") or [{}])[0]
    rain = payload.get("rain") or {}

    return {
        "temperature": round(main.get("temp", 0)),
        "feels_like": round(main.get("feels_like", main.get("temp", 0))),
        "humidity": int(main.get("humidity", 0)),
        "pressure": int(main.get("pressure", 0)) or None,
        "wind_speed": round(wind.get("speed", 0) * 3.6),
        "wind_direction": wind_direction(wind.get("deg")),
        "visibility": round(payload.get("visibility", 10000) / 1000, 1),
        "uv_index": estimate_uv_index(lat, now),
        "condition": weather.get("main", "Clear"),
        "description": weather.get("description", "clear sky"),
        "icon": weather.get("icon"),
        "rainfall": float(rain.get("1h", rain.get("3h", 0)) or 0),
    }


def process_forecast(payload: Dict, days: int = 7) -> List[Dict]:
    """Collapse 3-hourly entries into one row per calendar day"""
    entries = payload.get("list") or []
    if not entries:
        return []

    rows = []
    for item in entries:
        main = item.get("main") or {}
        weather = (item.get("weather") or [{}])[0]
        rows.append({
            "date": datetime.fromtimestamp(item["dt"], tz=timezone.utc).date().isoformat(),
            "temp_min": main.get("temp_min", main.get("temp", 0)),
            "temp_max": main.get("temp_max", main.get("temp", 0)),
            "humidity": main.get("humidity", 0),
            "condition": weather.get("main", "Clear"),
            "description": weather.get("description", ""),
            "pop": item.get("pop", 0) or 0,
            "rain": (item.get("rain") or {}).get("3h", 0) or 0,
            "wind": (item.get("wind") or {}).get("speed", 0) or 0,
        })

    df = pd.DataFrame(rows)
    daily = df.groupby("date", sort=True).agg(
        temp_min=("temp_min", "min"),
        temp_max=("temp_max", "max"),
        humidity=("humidity", "first"),
        condition=("condition", "first"),
        description=("description", "first"),
        pop=("pop", "first"),
        rainfall=("rain", "sum"),
        wind=("wind", "first"),
    ).head(days)

    return [
        {
            "date": date,
            "temp_min": round(row["temp_min"]),
            "temp_max": round(row["temp_max"]),
            "humidity": int(row["humidity"]),
            "condition": row["condition"],
            "description": row["description"],
            "rain_probability": round(row["pop"] * 100),
            "rainfall": round(float(row["rainfall"]), 1),
            "wind_speed": round(row["wind"] * 3.6),
        }
        for date, row in daily.iterrows()
    ]


def demo_weather(lat: float, lon: float, now: Optional[datetime] = None) -> Dict:
    """Plausible East African conditions when no live data is available"""
    now = now or datetime.now(timezone.utc)
    current = {
        "temperature": 24,
        "feels_like": 25,
        "humidity": 65,
        "pressure": 1013,
        "wind_speed": 12,
        "wind_direction": "NE",
        "visibility": 10.0,
        "uv_index": estimate_uv_index(lat, now),
        "condition": "Clouds",
        "description": "partly cloudy",
        "icon": "02d",
        "rainfall": 0.0,
    }
    start = pd.Timestamp(now.date())
    forecast = [
        {
            "date": (start + pd.Timedelta(days=i)).date().isoformat(),
            "temp_min": 16 + (i % 3),
            "temp_max": 26 + (i % 4),
            "humidity": 60 + (i * 3) % 20,
            "condition": "Rain" if i % 3 == 2 else "Clouds",
            "description": "light rain" if i % 3 == 2 else "scattered clouds",
            "rain_probability": 70 if i % 3 == 2 else 20,
            "rainfall": 6.0 if i % 3 == 2 else 0.0,
            "wind_speed": 10 + i,
        }
        for i in range(7)
    ]
    return {"current": current, "forecast": forecast}


def best_timing(action: str, hour: int) -> str:
    lowered = action.lower()
    for keyword, good_now, now_text, later_text in TIMING_RULES:
        if keyword in lowered:
            return now_text if good_now(hour) else later_text
    return "Within the next 24 hours"


def weather_actions(temperature: float, humidity: float, rainfall: float, hour: int = 8) -> List[Dict]:
    actions = []
    if temperature > 30:
        actions.append({
            "action": "Apply mulch around crops",
            "reason": f"High temperature ({round(temperature)}°C) will dry out the soil",
            "urgency": "high",
        })
    if humidity > 80:
        actions.append({
            "action": "Spray neem oil as a fungal preventive",
            "reason": f"High humidity ({round(humidity)}%) favours fungal disease",
            "urgency": "medium",
        })
    if rainfall > 10:
        actions.append({
            "action": "Check field drainage channels",
            "reason": f"Heavy rain ({rainfall}mm) can waterlog roots",
            "urgency": "high",
        })
    if rainfall < 2 and humidity < 40:
        actions.append({
            "action": "Deep water crops at the root zone",
            "reason": "Dry air and no rain are stressing crops",
            "urgency": "high",
        })

    for item in actions:
        item["best_time"] = best_timing(item["action"], hour)
    return actions[:3]


class WeatherService:
    """
    Current conditions and a 7 day outlook for a coordinate or a saved field.
    """

    def __init__(self, db=None, client: Optional[OpenWeatherClient] = None,
                 cache: Optional[ResultCache] = None, clock=None):
        self._db = db
        self.client = client or OpenWeatherClient()
        self.cache = cache or ResultCache(ttl=settings.WEATHER_CACHE_TTL, maxsize=500)
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    @staticmethod
    def cache_key(lat: float, lon: float) -> str:
        return f"{lat}-{lon}"

    def _report(self, lat, lon, current, forecast, source) -> Dict:
        return {
            "location": location_name(lat, lon),
            "latitude": lat,
            "longitude": lon,
            "current": current,
            "forecast": forecast,
            "data_source": source,
            "last_updated": self._now().isoformat(),
        }

    def _record(self, user_id: str, report: Dict):
        current = report["current"]
        try:
            self.db.table("weather_data").insert({
                "user_id": user_id,
                "location": {"lat": report["latitude"], "lng": report["longitude"], "name": report["location"]},
                "temperature": current["temperature"],
                "humidity": current["humidity"],
                "wind_speed": current["wind_speed"],
                "condition": current["condition"],
                "description": current["description"],
                "forecast": report["forecast"],
                "recorded_at": report["last_updated"],
            }).execute()
        except Exception as e:
            logger.error(f"❌ Error saving weather data: {e}")

    async def by_coordinates(self, lat: float, lon: float, user_id: Optional[str] = None) -> Dict:
        key = self.cache_key(lat, lon)
        cached = self.cache.get(key)
        if cached:
            return {**cached, "data_source": "cache"}

        try:
            current_raw = await self.client.current(lat, lon)
            forecast_raw = await self.client.forecast(lat, lon)
            report = self._report(
                lat, lon,
                process_current(current_raw, lat, self._now()),
                process_forecast(forecast_raw),
                "api",
            )
            if user_id:
                self._record(user_id, report)
            logger.info(f"🌤️ Weather fetched for {report['location']} ({lat}, {lon})")
        except Exception as e:
            logger.warning(f"⚠️ Weather API unavailable, using demo data: {e}")
            demo = demo_weather(lat, lon, self._now())
            report = self._report(lat, lon, demo["current"], demo["forecast"], "demo")

        self.cache.set(key, report)
        return report

    async def for_field(self, field_id: str, user_id: Optional[str] = None) -> Dict:
        query = self.db.table("fields").select("id, name, location, user_id").eq("id", field_id)
        if user_id:
            query = query.eq("user_id", user_id)
        response = query.limit(1).execute()
        if not response.data:
            raise NotFoundError("Field not found")

        field = response.data[0]
        location = field.get("location") or {}
        lat = location.get("lat")
        lon = location.get("lng") if location.get("lng") is not None else location.get("lon")
        if lat is None or lon is None:
            lat, lon = DEFAULT_LAT, DEFAULT_LON

        report = await self.by_coordinates(lat, lon, user_id)
        return {**report, "field_id": field["id"], "field_name": field.get("name") or "Demo Field"}

    async def actions(self, lat: float, lon: float) -> List[Dict]:
        report = await self.by_coordinates(lat, lon)
        current = report["current"]
        return weather_actions(
            current["temperature"],
            current["humidity"],
            current.get("rainfall", 0.0),
            self._now().hour,
        )
