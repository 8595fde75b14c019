"""
Yield prediction
Gemini estimates a season's harvest from crop, farm size, planting date and soil details.
When Gemini is unavailable the estimate falls back to a 3.5 t/ha baseline.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from cropgenius.clients.gemini import GeminiClient
from cropgenius.core.errors import CropGeniusError, NotFoundError, ValidationError
from cropgenius.core.supabase import get_supabase
from cropgenius.services.fields_service import ACRES_PER_HECTARE

logger = logging.getLogger(__name__)

BASE_YIELD_KG_PER_HA = 3500
DAYS_TO_HARVEST = 90
FALLBACK_CONFIDENCE = 75
DEFAULT_CONFIDENCE = 80
MARKET_TRENDS = ("rising", "steady", "falling")

# USD per kg
DEFAULT_PRICES = {
    "maize": 0.35,
    "tomatoes": 0.85,
    "cassava": 0.25,
    "rice": 0.50,
    "beans": 0.45,
}
DEFAULT_PRICE = 0.50

GENERATION_CONFIG = {
    "temperature": 0.2,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}

DEFAULT_KEY_FACTORS = {
    "weather_impact": "Weather conditions appear favorable based on seasonal patterns",
    "soil_impact": "Soil conditions appear adequate for crop growth",
    "health_impact": "No significant disease or pest pressure detected",
    "management_impact": "Farming practices appear appropriate for yield optimization",
}

DEFAULT_RECOMMENDATIONS = [
    "Apply appropriate fertilizer based on soil test results",
    "Maintain proper irrigation schedule throughout growing season",
    "Monitor crop development and adjust practices as needed",
]

YIELD_PROMPT = """You are a world-class agricultural data scientist. Analyze this farm data and provide expert yield predictions.

Farm Data:
- Crop Type: {crop_type}
- Farm Size: {farm_size} hectares
- Planting Date: {planting_date}
- Location: {location}
- Soil Type: {soil_type}
- Expected Rainfall: {expected_rainfall}
- Fertilizer Use: {fertilizer_use}
- Previous Yield: {previous_yield}

Soil Data:
- pH: {ph}
- Organic Matter: {organic_matter}
- Nitrogen: {nitrogen}
- Phosphorus: {phosphorus}
- Potassium: {potassium}

Tasks:
1. Predict total yield in kilograms for the entire farm
2. Predict yield per hectare
3. Assess confidence level in prediction (0-100)
4. Identify key factors affecting yield (weather, soil, health, management)
5. Provide actionable recommendations for yield improvement
6. List the main risks to this harvest
7. Estimate harvest date
8. Calculate potential revenue in USD and the market trend

JSON Response:
{{
  "predictedYieldKg": {example_total},
  "predictedYieldKgPerHa": {base_yield},
  "confidenceScore": 85,
  "keyFactors": {{
    "weatherImpact": "Positive impact from seasonal rainfall patterns",
    "soilImpact": "Adequate nutrient levels but pH needs adjustment",
    "healthImpact": "No major disease pressure detected",
    "managementImpact": "Good irrigation and fertilizer application timing"
  }},
  "recommendations": ["Apply additional nitrogen at knee height", "Monitor for late-season pests"],
  "riskFactors": ["Mid-season dry spell"],
  "harvestDateEstimate": "{harvest_date}",
  "economicImpact": {{
    "estimatedRevenueUsd": {example_revenue},
    "marketTrend": "rising",
    "marketTrendPercentage": "+8%"
  }}
}}

Analyze and respond with JSON only:"""


def price_per_kg(crop_type: str) -> float:
    return DEFAULT_PRICES.get(crop_type.strip().lower(), DEFAULT_PRICE)


def harvest_estimate(planting_date: date) -> str:
    return (planting_date + timedelta(days=DAYS_TO_HARVEST)).isoformat()


def _not_specified(value, suffix: str = "") -> str:
    return f"{value}{suffix}" if value not in (None, "") else "Not specified"


def build_prompt(request: Dict) -> str:
    size = request["farm_size_ha"]
    soil = request.get("soil_data") or {}
    location = request.get("location")
    return YIELD_PROMPT.format(
        crop_type=request["crop_type"],
        farm_size=size,
        planting_date=request["planting_date"].isoformat(),
        location=f"{location['lat']}, {location['lng']}" if location else "Not specified",
        soil_type=_not_specified(request.get("soil_type")),
        expected_rainfall=_not_specified(request.get("expected_rainfall")),
        fertilizer_use=_not_specified(request.get("fertilizer_use")),
        previous_yield=_not_specified(request.get("previous_yield"), " tons"),
        ph=_not_specified(soil.get("ph")),
        organic_matter=_not_specified(soil.get("organic_matter"), "%"),
        nitrogen=_not_specified(soil.get("nitrogen")),
        phosphorus=_not_specified(soil.get("phosphorus")),
        potassium=_not_specified(soil.get("potassium")),
        example_total=round(size * BASE_YIELD_KG_PER_HA),
        base_yield=BASE_YIELD_KG_PER_HA,
        harvest_date=harvest_estimate(request["planting_date"]),
        example_revenue=round(size * BASE_YIELD_KG_PER_HA * price_per_kg(request["crop_type"])),
    )


def fallback_prediction(request: Dict) -> Dict:
    size = request["farm_size_ha"]
    return {
        "predicted_yield_kg": round(size * BASE_YIELD_KG_PER_HA, 1),
        "predicted_yield_kg_per_ha": BASE_YIELD_KG_PER_HA,
        "confidence_score": FALLBACK_CONFIDENCE,
        "key_factors": dict(DEFAULT_KEY_FACTORS),
        "recommendations": list(DEFAULT_RECOMMENDATIONS),
        "risk_factors": [],
        "harvest_date_estimate": harvest_estimate(request["planting_date"]),
        "economic_impact": {
            "estimated_revenue_usd": round(size * BASE_YIELD_KG_PER_HA * price_per_kg(request["crop_type"])),
            "market_trend": "steady",
            "market_trend_percentage": "+0%",
        },
    }


def _number(value, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _strings(value, default: List[str]) -> List[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item) for item in value if item]


def parse_prediction(parsed: Dict, request: Dict) -> Dict:
    """Sanitise Gemini's JSON, filling anything missing or out of range from the baseline"""
    size = request["farm_size_ha"]
    per_ha = _number(parsed.get("predictedYieldKgPerHa"), BASE_YIELD_KG_PER_HA)
    total = _number(parsed.get("predictedYieldKg"), per_ha * size)

    try:
        confidence = float(parsed.get("confidenceScore"))
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    # Some answers use a 0-1 scale
    if 0 < confidence <= 1:
        confidence *= 100

    factors = parsed.get("keyFactors") if isinstance(parsed.get("keyFactors"), dict) else {}
    economics = parsed.get("economicImpact") if isinstance(parsed.get("economicImpact"), dict) else {}
    trend = economics.get("marketTrend")

    return {
        "predicted_yield_kg": round(total, 1),
        "predicted_yield_kg_per_ha": round(per_ha, 1),
        "confidence_score": round(min(max(confidence, 0), 100), 1),
        "key_factors": {
            "weather_impact": factors.get("weatherImpact") or DEFAULT_KEY_FACTORS["weather_impact"],
            "soil_impact": factors.get("soilImpact") or DEFAULT_KEY_FACTORS["soil_impact"],
            "health_impact": factors.get("healthImpact") or DEFAULT_KEY_FACTORS["health_impact"],
            "management_impact": factors.get("managementImpact") or DEFAULT_KEY_FACTORS["management_impact"],
        },
        "recommendations": _strings(parsed.get("recommendations"), DEFAULT_RECOMMENDATIONS),
        "risk_factors": _strings(parsed.get("riskFactors"), []),
        "harvest_date_estimate": parsed.get("harvestDateEstimate") or harvest_estimate(request["planting_date"]),
        "economic_impact": {
            "estimated_revenue_usd": round(_number(
                economics.get("estimatedRevenueUsd"), total * price_per_kg(request["crop_type"])
            )),
            "market_trend": trend if trend in MARKET_TRENDS else "steady",
            "market_trend_percentage": economics.get("marketTrendPercentage") or "+0%",
        },
    }


class YieldPredictionService:
    def __init__(self, db=None, gemini: Optional[GeminiClient] = None, clock=None):
        self._db = db
        self.gemini = gemini or GeminiClient()
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def _fill_from_field(self, request: Dict, user_id: str) -> Dict:
        response = self.db.table("fields")\
            .select("id, name, size, size_unit, location, soil_type, crop_type")\
            .eq("id", request["field_id"])\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Field not found")
        field = response.data[0]

        filled = dict(request)
        if not filled.get("farm_size_ha") and field.get("size"):
            size = float(field["size"])
            if (field.get("size_unit") or "hectares") == "acres":
                size = size / ACRES_PER_HECTARE
            filled["farm_size_ha"] = round(size, 4)
        location = field.get("location")
        if not filled.get("location") and isinstance(location, dict) and location.get("lat") is not None:
            filled["location"] = {"lat": location["lat"], "lng": location.get("lng", location.get("lon"))}
        filled["soil_type"] = filled.get("soil_type") or field.get("soil_type")
        filled["crop_type"] = filled.get("crop_type") or field.get("crop_type")
        return filled

    async def predict(self, user_id: Optional[str], request: Dict) -> Dict:
        started = self._now()
        if request.get("field_id") and user_id:
            request = self._fill_from_field(request, user_id)

        if not request.get("crop_type"):
            raise ValidationError("Crop type is required")
        if not request.get("farm_size_ha") or request["farm_size_ha"] <= 0:
            raise ValidationError("Farm size (hectares) is required and must be greater than 0")

        source = "gemini"
        try:
            parsed, _usage = await self.gemini.generate_json(build_prompt(request), GENERATION_CONFIG)
            if not isinstance(parsed, dict):
                raise ValueError("prediction is not a JSON object")
            prediction = parse_prediction(parsed, request)
        except (CropGeniusError, ValueError) as e:
            logger.warning(f"⚠️ Yield prediction unavailable, using baseline estimate: {e}")
            prediction = fallback_prediction(request)
            source = "fallback"

        finished = self._now()
        result = {
            **prediction,
            "crop_type": request["crop_type"],
            "field_id": request.get("field_id"),
            "farm_size_ha": request["farm_size_ha"],
            "planting_date": request["planting_date"].isoformat(),
            "prediction_date": finished.date().isoformat(),
            "location": request.get("location"),
            "source": source,
            "processing_time_ms": int((finished - started).total_seconds() * 1000),
        }

        if user_id:
            saved = self._save(user_id, result)
            if saved:
                result["id"] = saved.get("id")

        logger.info(
            f"🌾 Yield prediction for {request['crop_type']}: {result['predicted_yield_kg']}kg "
            f"({result['confidence_score']}% confidence, {source})"
        )
        return result

    def _save(self, user_id: str, result: Dict) -> Optional[Dict]:
        location = result.get("location")
        try:
            response = self.db.table("yield_predictions").insert({
                "field_id": result["field_id"],
                "user_id": user_id,
                "crop_type": result["crop_type"],
                "planting_date": result["planting_date"],
                "predicted_yield_kg": result["predicted_yield_kg"],
                "predicted_yield_kg_per_ha": result["predicted_yield_kg_per_ha"],
                "confidence_score": result["confidence_score"],
                "key_factors": result["key_factors"],
                "recommendations": result["recommendations"],
                "prediction_date": result["prediction_date"],
                "harvest_date_estimate": result["harvest_date_estimate"],
                "economic_impact": result["economic_impact"],
                "location": f"{location['lat']},{location['lng']}" if location else None,
            }).execute()
        except Exception as e:
            logger.error(f"❌ Error saving yield prediction: {e}")
            return None
        return (response.data or [None])[0]

    def history(self, user_id: str, field_id: Optional[str] = None, limit: int = 20) -> List[Dict]:
        query = self.db.table("yield_predictions").select("*").eq("user_id", user_id)
        if field_id:
            query = query.eq("field_id", field_id)
        response = query.order("created_at", desc=True).limit(limit).execute()
        return response.data or []
