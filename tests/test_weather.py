import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import NetworkError, NotFoundError
from cropgenius.services.weather_advisor import (
    WeatherAdvisor,
    assess_risks,
    current_season,
    determine_intent,
)
from cropgenius.services.weather_service import (
    WeatherService,
    best_timing,
    location_name,
    process_current,
    process_forecast,
    weather_actions,
    wind_direction,
)

NOW = datetime(2024, 4, 10, 8, 0, tzinfo=timezone.utc)
MAY_1 = 1714521600  # 2024-05-01T00:00:00Z


def _client(current=None, forecast=None, error=None):
    client = MagicMock()
    if error:
        client.current = AsyncMock(side_effect=error)
        client.forecast = AsyncMock(side_effect=error)
    else:
        client.current = AsyncMock(return_value=current)
        client.forecast = AsyncMock(return_value=forecast)
    return client


def _service(fake_db, client):
    return WeatherService(db=fake_db, client=client, cache=ResultCache(ttl=900), clock=lambda: NOW)


CURRENT = {
    "main": {"temp": 27.6, "feels_like": 29.1, "humidity": 58, "pressure": 1012},
    "wind": {"speed": 5, "deg": 90},
    "weather": [{"main": "Clouds", "description": "scattered clouds", "icon": "03d"}],
    "visibility": 8000,
}

FORECAST = {"list": [
    {"dt": MAY_1, "main": {"temp_min": 15, "temp_max": 22, "humidity": 70},
     "weather": [{"main": "Rain", "description": "light rain"}], "pop": 0.8, "rain": {"3h": 2.5}},
    {"dt": MAY_1 + 3 * 3600, "main": {"temp_min": 17, "temp_max": 27, "humidity": 60},
     "weather": [{"main": "Clouds", "description": "clouds"}], "pop": 0.2, "rain": {"3h": 1.0}},
    {"dt": MAY_1 + 24 * 3600, "main": {"temp_min": 16, "temp_max": 25, "humidity": 55},
     "weather": [{"main": "Clear", "description": "clear sky"}], "pop": 0},
]}


class TestHelpers:
    def test_wind_direction(self):
        assert wind_direction(0) == "N"
        assert wind_direction(90) == "E"
        assert wind_direction(350) == "N"
        assert wind_direction(None) == "N"

    def test_location_name(self):
        assert location_name(-1.29, 36.82) == "Nairobi Region"
        assert location_name(0.0, 37.0) == "Central Kenya"
        assert location_name(6.5, 3.4) == "East Africa"

    def test_process_current_converts_units(self):
        current = process_current(CURRENT, -1.29, NOW)
        assert current["temperature"] == 28
        assert current["wind_speed"] == 18
        assert current["wind_direction"] == "E"
        assert current["visibility"] == 8.0
        assert current["rainfall"] == 0.0

    def test_process_forecast_groups_by_day(self):
        days = process_forecast(FORECAST)
        assert [d["date"] for d in days] == ["2024-05-01", "2024-05-02"]
        first = days[0]
        assert first["temp_min"] == 15
        assert first["temp_max"] == 27
        assert first["rain_probability"] == 80
        assert first["rainfall"] == 3.5
        assert days[1]["condition"] == "Clear"

    def test_process_forecast_empty(self):
        assert process_forecast({"list": []}) == []

    def test_weather_actions_are_capped_at_three(self):
        actions = weather_actions(temperature=34, humidity=85, rainfall=20, hour=7)
        assert len(actions) == 3
        assert actions[0]["action"] == "Apply mulch around crops"
        assert actions[0]["best_time"] == "Now, before the midday heat"
        assert actions[1]["best_time"] == "Now (calm, cool hours)"
        assert actions[2]["best_time"] == "Immediately"

    def test_dry_conditions_call_for_watering(self):
        actions = weather_actions(temperature=25, humidity=30, rainfall=0, hour=13)
        assert [a["action"] for a in actions] == ["Deep water crops at the root zone"]
        assert actions[0]["best_time"] == "Early morning 5-8 AM or evening 5-7 PM"

    def test_best_timing_default(self):
        assert best_timing("Scout for aphids", 12) == "Within the next 24 hours"


class TestWeatherService:
    def test_live_report_is_cached(self, fake_db):
        client = _client(CURRENT, FORECAST)
        service = _service(fake_db, client)

        first = asyncio.run(service.by_coordinates(-1.29, 36.82, user_id="user-1"))
        second = asyncio.run(service.by_coordinates(-1.29, 36.82))

        assert first["data_source"] == "api"
        assert first["location"] == "Nairobi Region"
        assert second["data_source"] == "cache"
        assert client.current.await_count == 1
        saved = fake_db.payloads("weather_data", "insert")
        assert saved[0]["user_id"] == "user-1"
        assert saved[0]["temperature"] == 28

    def test_falls_back_to_demo_data(self, fake_db):
        service = _service(fake_db, _client(error=NetworkError("network down")))
        report = asyncio.run(service.by_coordinates(-1.29, 36.82, user_id="user-1"))

        assert report["data_source"] == "demo"
        assert len(report["forecast"]) == 7
        assert report["forecast"][0]["date"] == "2024-04-10"
        assert fake_db.payloads("weather_data", "insert") == []

    def test_for_field_uses_field_location(self, fake_db):
        fake_db.queue("fields", [{"id": "f1", "name": "Shamba A", "location": {"lat": 0.1, "lng": 37.0}}])
        client = _client(CURRENT, FORECAST)
        service = _service(fake_db, client)

        report = asyncio.run(service.for_field("f1", user_id="user-1"))

        client.current.assert_awaited_once_with(0.1, 37.0)
        assert report["field_name"] == "Shamba A"
        assert report["location"] == "Central Kenya"

    def test_for_field_with_unset_coordinates(self, fake_db):
        fake_db.queue("fields", [{"id": "f2", "name": "New plot", "location": {"lat": None, "lng": None}}])
        client = _client(CURRENT, FORECAST)
        service = _service(fake_db, client)

        report = asyncio.run(service.for_field("f2", user_id="user-1"))

        client.current.assert_awaited_once_with(-1.2921, 36.8219)
        assert report["field_id"] == "f2"

    def test_for_field_on_the_equator(self, fake_db):
        fake_db.queue("fields", [{"id": "f3", "name": "Equator plot", "location": {"lat": 0.0, "lon": 32.5}}])
        client = _client(CURRENT, FORECAST)
        service = _service(fake_db, client)

        asyncio.run(service.for_field("f3"))

        client.current.assert_awaited_once_with(0.0, 32.5)

    def test_for_missing_field(self, fake_db):
        service = _service(fake_db, _client(CURRENT, FORECAST))
        with pytest.raises(NotFoundError):
            asyncio.run(service.for_field("missing"))


class TestWeatherAdvisor:
    def test_intents(self):
        assert determine_intent("Will it rain tomorrow?") == "forecast"
        assert determine_intent("When should I plant beans") == "planting"
        assert determine_intent("How should I water my sandy soil") == "irrigation"
        assert determine_intent("Is there a flood risk") == "risk"
        assert determine_intent("What is the farming calendar") == "season"
        assert determine_intent("Hello") == "general"

    def test_current_season(self):
        assert current_season(4) == "Long rains season"
        assert current_season(11) == "Short rains season"
        assert current_season(7) == "Dry season"

    def test_assess_risks(self):
        current = {"wind_speed": 25, "humidity": 90}
        forecast = [{"temp_max": 36, "rainfall": 20}] * 3
        assessment = assess_risks(current, forecast)
        assert assessment["level"] == "HIGH"
        assert assessment["risks"] == ["Heat stress", "Flooding/waterlogging", "Wind damage", "Fungal diseases"]

    def test_reply_on_demo_weather(self, fake_db):
        service = _service(fake_db, _client(error=NetworkError("network down")))
        advisor = WeatherAdvisor(weather=service)

        result = asyncio.run(advisor.reply("How should I water my sandy soil", soil_type="sandy"))

        assert result["intent"] == "irrigation"
        assert result["agent_type"] == "weather"
        assert result["confidence"] == 0.88
        assert result["risk_level"] == "LOW"
        assert "Irrigation Management for Nairobi Region" in result["content"]
        assert "drains quickly" in result["content"]
