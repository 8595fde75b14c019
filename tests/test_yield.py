import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.errors import GeminiAPIError, NotFoundError, ValidationError
from cropgenius.services.yield_service import (
    YieldPredictionService,
    build_prompt,
    fallback_prediction,
    harvest_estimate,
    parse_prediction,
    price_per_kg,
)

NOW = datetime(2024, 5, 20, 8, 0, tzinfo=timezone.utc)

REQUEST = {"crop_type": "Maize", "farm_size_ha": 2.0, "planting_date": date(2024, 3, 15)}


def _service(fake_db, answer=None, error=None):
    gemini = MagicMock()
    if error:
        gemini.generate_json = AsyncMock(side_effect=error)
    else:
        gemini.generate_json = AsyncMock(return_value=(answer, {"totalTokenCount": 700}))
    return YieldPredictionService(db=fake_db, gemini=gemini, clock=lambda: NOW)


def test_prices_and_harvest_date():
    assert price_per_kg("Maize") == 0.35
    assert price_per_kg("sorghum") == 0.50
    assert harvest_estimate(date(2024, 3, 15)) == "2024-06-13"


def test_prompt_lists_farm_data():
    prompt = build_prompt({**REQUEST, "location": {"lat": -0.5, "lng": 35.2}, "soil_data": {"ph": 5.8}})
    assert "- Crop Type: Maize" in prompt
    assert "- Farm Size: 2.0 hectares" in prompt
    assert "- Planting Date: 2024-03-15" in prompt
    assert "- Location: -0.5, 35.2" in prompt
    assert "- pH: 5.8" in prompt
    assert "- Nitrogen: Not specified" in prompt
    assert '"predictedYieldKg": 7000' in prompt


def test_fallback_baseline():
    prediction = fallback_prediction(REQUEST)
    assert prediction["predicted_yield_kg"] == 7000.0
    assert prediction["predicted_yield_kg_per_ha"] == 3500
    assert prediction["confidence_score"] == 75
    assert prediction["harvest_date_estimate"] == "2024-06-13"
    assert prediction["economic_impact"] == {
        "estimated_revenue_usd": 2450, "market_trend": "steady", "market_trend_percentage": "+0%",
    }


def test_parse_fills_gaps_and_clamps():
    prediction = parse_prediction({
        "predictedYieldKgPerHa": 4200,
        "confidenceScore": 0.82,
        "keyFactors": {"soilImpact": "Low nitrogen"},
        "recommendations": ["Top-dress with CAN"],
        "economicImpact": {"marketTrend": "booming", "estimatedRevenueUsd": -5},
    }, REQUEST)

    assert prediction["predicted_yield_kg"] == 8400.0
    assert prediction["confidence_score"] == 82.0
    assert prediction["key_factors"]["soil_impact"] == "Low nitrogen"
    assert prediction["key_factors"]["weather_impact"].startswith("Weather conditions appear favorable")
    assert prediction["recommendations"] == ["Top-dress with CAN"]
    assert prediction["risk_factors"] == []
    assert prediction["harvest_date_estimate"] == "2024-06-13"
    assert prediction["economic_impact"]["market_trend"] == "steady"
    assert prediction["economic_impact"]["estimated_revenue_usd"] == 2940


def test_predict_saves_gemini_answer(fake_db):
    fake_db.queue("yield_predictions", [{"id": "yp-1"}])
    service = _service(fake_db, answer={
        "predictedYieldKg": 9000, "predictedYieldKgPerHa": 4500, "confidenceScore": 88,
        "riskFactors": ["Mid-season dry spell"], "harvestDateEstimate": "2024-07-20",
        "economicImpact": {"estimatedRevenueUsd": 3150, "marketTrend": "rising", "marketTrendPercentage": "+8%"},
    })

    result = asyncio.run(service.predict("user-1", dict(REQUEST)))

    assert result["id"] == "yp-1"
    assert result["source"] == "gemini"
    assert result["predicted_yield_kg"] == 9000.0
    assert result["risk_factors"] == ["Mid-season dry spell"]
    assert result["prediction_date"] == "2024-05-20"
    assert result["processing_time_ms"] == 0
    saved = fake_db.payloads("yield_predictions", "insert")[0]
    assert saved["user_id"] == "user-1"
    assert saved["planting_date"] == "2024-03-15"
    assert saved["economic_impact"]["market_trend"] == "rising"
    assert saved["location"] is None


def test_gemini_failure_uses_baseline(fake_db):
    service = _service(fake_db, error=GeminiAPIError("gemini: HTTP 500"))
    result = asyncio.run(service.predict(None, dict(REQUEST)))

    assert result["source"] == "fallback"
    assert result["predicted_yield_kg"] == 7000.0
    assert fake_db.payloads("yield_predictions", "insert") == []


def test_non_object_answer_uses_baseline(fake_db):
    service = _service(fake_db, answer=["4200 kg"])
    result = asyncio.run(service.predict(None, dict(REQUEST)))
    assert result["source"] == "fallback"


def test_field_supplies_missing_details(fake_db):
    fake_db.queue("fields", [{
        "id": "f1", "size": 5, "size_unit": "acres", "location": {"lat": -0.5, "lng": 35.2},
        "crop_type": "beans", "soil_type": "clay",
    }])
    service = _service(fake_db, answer={"predictedYieldKgPerHa": 1000})

    result = asyncio.run(service.predict("user-1", {"field_id": "f1", "planting_date": date(2024, 3, 15)}))

    assert result["crop_type"] == "beans"
    assert result["farm_size_ha"] == pytest.approx(2.0234)
    assert result["location"] == {"lat": -0.5, "lng": 35.2}
    prompt = service.gemini.generate_json.await_args.args[0]
    assert "- Soil Type: clay" in prompt
    assert ("user_id", "user-1") in fake_db.filters("fields")


def test_unknown_field(fake_db):
    with pytest.raises(NotFoundError):
        asyncio.run(_service(fake_db).predict("user-1", {"field_id": "nope", "planting_date": date(2024, 3, 15)}))


def test_requires_crop_and_size(fake_db):
    service = _service(fake_db)
    with pytest.raises(ValidationError):
        asyncio.run(service.predict(None, {"farm_size_ha": 1, "planting_date": date(2024, 3, 15)}))
    with pytest.raises(ValidationError):
        asyncio.run(service.predict(None, {"crop_type": "Maize", "farm_size_ha": 0,
                                           "planting_date": date(2024, 3, 15)}))
    service.gemini.generate_json.assert_not_awaited()


def test_history_filters_by_field(fake_db):
    fake_db.queue("yield_predictions", [{"id": "yp-1"}])
    service = _service(fake_db)

    assert service.history("user-1", field_id="f1", limit=5) == [{"id": "yp-1"}]
    assert ("field_id", "f1") in fake_db.filters("yield_predictions")
    assert ("limit", (5,), {}) in fake_db.executed[0][1]
