"""
Crop recommendations
Scores a catalogue of African staple and cash crops against a field's soil, climate,
elevation, rotation history, season and size, and answers crop-planning chat questions
from the ranked list.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional

from cropgenius.core.errors import NotFoundError
from cropgenius.core.supabase import get_supabase
from cropgenius.services.weather_service import DEFAULT_LAT, DEFAULT_LON

logger = logging.getLogger(__name__)

ENGINE_VERSION = "2.0.0"
DEFAULT_SOIL = "loamy"
CHAT_CONFIDENCE = 0.9
CHAT_RECOMMENDATIONS = 3

CROP_CATALOGUE = [
    {
        "name": "Maize",
        "base_confidence": 85,
        "soil_preference": ["loamy", "clay", "sandy-loam"],
        "water_requirement": "medium",
        "climate_zones": ["tropical", "subtropical"],
        "growing_period": 120,
        "elevation_range": (0, 2500),
        "market": {"base_price": 0.35, "demand": "high", "volatility": "medium"},
        "disease_risks": ["Fall Armyworm", "Maize Streak Virus", "Gray Leaf Spot", "Maize Lethal Necrosis"],
        "yield_range": (2000, 4000),
        "investment_cost": 200,
    },
    {
        "name": "Cassava",
        "base_confidence": 80,
        "soil_preference": ["sandy", "loamy", "poor"],
        "water_requirement": "low",
        "climate_zones": ["tropical"],
        "growing_period": 300,
        "market": {"base_price": 0.25, "demand": "medium", "volatility": "low"},
        "disease_risks": ["Cassava Mosaic Disease", "Cassava Brown Streak"],
        "yield_range": (8000, 15000),
        "investment_cost": 150,
    },
    {
        "name": "Sweet Potatoes",
        "base_confidence": 75,
        "soil_preference": ["sandy-loam", "loamy"],
        "water_requirement": "medium",
        "climate_zones": ["tropical", "subtropical"],
        "growing_period": 90,
        "market": {"base_price": 0.45, "demand": "medium", "volatility": "medium"},
        "disease_risks": ["Sweet Potato Weevil", "Viral Diseases"],
        "yield_range": (5000, 12000),
        "investment_cost": 300,
    },
    {
        "name": "Groundnuts",
        "base_confidence": 70,
        "soil_preference": ["sandy", "sandy-loam"],
        "water_requirement": "low",
        "climate_zones": ["tropical", "subtropical"],
        "growing_period": 100,
        "market": {"base_price": 1.20, "demand": "high", "volatility": "high"},
        "disease_risks": ["Groundnut Rosette", "Leaf Spot", "Rust"],
        "yield_range": (800, 1500),
        "investment_cost": 250,
    },
    {
        "name": "Beans",
        "base_confidence": 68,
        "soil_preference": ["loamy", "clay-loam"],
        "water_requirement": "medium",
        "climate_zones": ["tropical", "subtropical"],
        "growing_period": 75,
        "market": {"base_price": 0.90, "demand": "medium", "volatility": "medium"},
        "disease_risks": ["Bean Common Mosaic", "Anthracnose", "Rust"],
        "yield_range": (800, 1200),
        "investment_cost": 180,
    },
    {
        "name": "Tomato",
        "base_confidence": 65,
        "soil_preference": ["loamy", "sandy-loam"],
        "water_requirement": "high",
        "climate_zones": ["tropical", "subtropical"],
        "growing_period": 80,
        "market": {"base_price": 0.80, "demand": "high", "volatility": "high"},
        "disease_risks": ["Late Blight", "Early Blight", "Bacterial Wilt"],
        "yield_range": (15000, 30000),
        "investment_cost": 500,
    },
]

PLANTING_WINDOWS = {
    "Maize": {"start": "March", "end": "May", "optimal": "April"},
    "Cassava": {"start": "March", "end": "June", "optimal": "April"},
    "Sweet Potatoes": {"start": "February", "end": "May", "optimal": "March"},
    "Groundnuts": {"start": "April", "end": "June", "optimal": "May"},
    "Beans": {"start": "March", "end": "May", "optimal": "April"},
    "Tomato": {"start": "February", "end": "April", "optimal": "March"},
}
DEFAULT_PLANTING_WINDOW = {"start": "March", "end": "May", "optimal": "April"}

ROTATION_BENEFITS = {
    "Maize": "Excellent after legumes for nitrogen utilization",
    "Cassava": "Good for soil improvement and can grow in poorer soils",
    "Sweet Potatoes": "Helps break pest cycles and improves soil structure",
    "Groundnuts": "Fixes nitrogen for subsequent crops",
    "Beans": "Excellent nitrogen fixer for soil improvement",
    "Tomato": "High-value crop for diversified income",
}

# Previous crop -> crops that follow it well
ROTATION_PAIRS = {
    "maize": ["groundnuts", "beans", "cassava"],
    "groundnuts": ["maize", "sweet potatoes", "tomato"],
    "beans": ["maize", "sweet potatoes", "tomato"],
    "cassava": ["maize", "groundnuts", "beans"],
    "tomato": ["beans", "groundnuts", "maize"],
    "sweet potatoes": ["beans", "groundnuts", "maize"],
}

STAPLES = ("Maize", "Cassava")

CHAT_INTENTS = [
    ("selection", ["what to plant", "which crop", "best crop", "recommend", "suggest"]),
    ("rotation", ["rotation", "rotate", "next crop", "after", "sequence"]),
    ("timing", ["when to plant", "planting time", "season", "timing"]),
    ("economics", ["profit", "money", "income", "cost", "economic", "viable"]),
    ("suitability", ["suitable", "good for", "grow well", "conditions", "soil"]),
]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def climate_zone(lat: float) -> str:
    lat = abs(lat)
    if lat >= 23.5:
        return "temperate"
    if lat >= 10:
        return "subtropical"
    return "tropical"


def african_region(lat: float, lng: float) -> str:
    if 0 <= lat <= 15 and 15 <= lng <= 50:
        return "East Africa"
    if -10 <= lat <= 5 and 8 <= lng <= 25:
        return "Central Africa"
    if 5 <= lat <= 20 and -20 <= lng <= 15:
        return "West Africa"
    if -35 <= lat <= -15 and 15 <= lng <= 35:
        return "Southern Africa"
    if 20 <= lat <= 35 and -10 <= lng <= 35:
        return "North Africa"
    return "Unknown Region"


def estimate_elevation(lat: float, lng: float) -> float:
    """Rough elevation in metres from known highland and coastal belts"""
    if -5 <= lat <= 5 and 35 <= lng <= 40:
        return 1800
    if 5 <= lat <= 15 and 35 <= lng <= 45:
        return 2200
    if abs(lng - 39) < 2 or abs(lng - 3) < 2:
        return 50
    return 1200


def seasonal_suitability(lat: float, month: int) -> float:
    """1.1 inside the main rainy season for the hemisphere, 1.0 otherwise"""
    if lat < 0:
        return 1.1 if month >= 10 or month <= 3 else 1.0
    return 1.1 if 4 <= month <= 9 else 1.0


def water_suitability(crop: Dict) -> int:
    if crop["water_requirement"] == "low":
        return 95
    if crop["water_requirement"] == "high":
        return 55
    return 75


def market_suitability(crop: Dict) -> int:
    market = crop["market"]
    demand = {"high": 90, "medium": 75}.get(market["demand"], 60)
    penalty = {"high": 10, "medium": 5}.get(market["volatility"], 0)
    return max(50, demand - penalty)


def price_trend(crop: Dict) -> str:
    market = crop["market"]
    if market["demand"] == "high" and market["volatility"] != "high":
        return "rising"
    if market["demand"] == "low":
        return "falling"
    return "stable"


def is_good_rotation(current_crop: str, candidate: str) -> bool:
    return candidate in ROTATION_PAIRS.get(current_crop, [])


def economic_score(crop: Dict) -> float:
    market = crop["market"]
    roi = (crop["yield_range"][1] * market["base_price"] - crop["investment_cost"]) / crop["investment_cost"]
    demand = {"high": 1.2, "medium": 1.0}.get(market["demand"], 0.8)
    volatility = 0.9 if market["volatility"] == "high" else 1.0
    return min(1.0, roi * demand * volatility / 2)


def field_size_boost(crop: Dict, size: float) -> float:
    if size < 0.5 and crop["market"]["base_price"] > 0.6:
        return 1.2
    if size > 2 and crop["name"] in STAPLES:
        return 1.1
    return 1.0


def rotation_benefit(crop: Dict, current_crop: Optional[str]) -> str:
    if not current_crop:
        return f"{crop['name']} is an excellent choice for establishing your cropping system."
    return ROTATION_BENEFITS.get(crop["name"], f"{crop['name']} provides good rotation benefits.")


def describe(crop: Dict, suitability: Dict) -> str:
    soil = "excellent" if suitability["soil"] > 80 else "good" if suitability["soil"] > 60 else "moderate"
    climate = "ideal" if suitability["climate"] > 80 else "suitable" if suitability["climate"] > 60 else "acceptable"
    return (f"{crop['name']} shows {soil} soil compatibility and {climate} climate conditions for your field. "
            f"This crop is well-suited for your farming conditions.")


def field_conditions(field: Dict, profile: Optional[Dict] = None) -> Dict:
    """The inputs the scorer needs, with defaults for anything the field does not record"""
    location = field.get("location")
    if not isinstance(location, dict) and profile and isinstance(profile.get("location"), dict):
        location = profile["location"]
    location = location if isinstance(location, dict) else {}
    lat = location.get("lat")
    lng = location.get("lng") if location.get("lng") is not None else location.get("lon")
    if lat is None or lng is None:
        lat, lng = DEFAULT_LAT, DEFAULT_LON

    metadata = field.get("metadata") or {}
    elevation = metadata.get("elevation")
    return {
        "lat": lat,
        "lng": lng,
        "soil_type": (metadata.get("soil_type") or field.get("soil_type") or DEFAULT_SOIL).lower(),
        "size": field.get("size") or 1,
        "current_crop": field.get("crop_type_id") or field.get("crop_type"),
        "region": african_region(lat, lng),
        "climate_zone": climate_zone(lat),
        "elevation": elevation if elevation is not None else estimate_elevation(lat, lng),
    }


def score_crop(crop: Dict, conditions: Dict, month: int,
               include_market_data: bool = True, include_disease_risk: bool = True) -> Dict:
    confidence = float(crop["base_confidence"])

    soil_type = conditions["soil_type"]
    if soil_type in crop["soil_preference"]:
        soil = 1.0
    else:
        soil = 0.8 if soil_type == "unknown" else 0.6
    confidence *= 0.75 + soil * 0.25

    climate = 1.0 if conditions["climate_zone"] in crop["climate_zones"] else 0.7
    confidence *= 0.8 + climate * 0.2

    # Crops without a recorded range grow at any elevation
    low, high = crop.get("elevation_range", (-math.inf, math.inf))
    elevation = 1.0 if low <= conditions["elevation"] <= high else 0.8
    confidence *= 0.9 + elevation * 0.1

    rotation = 1.0
    current = (conditions.get("current_crop") or "").lower()
    if current:
        name = crop["name"].lower()
        if name in current:
            rotation = 0.6
        elif is_good_rotation(current, name):
            rotation = 1.3
    confidence *= 0.85 + rotation * 0.15

    confidence *= 0.85 + seasonal_suitability(conditions["lat"], month) * 0.15
    confidence *= 0.9 + economic_score(crop) * 0.1
    confidence *= 0.95 + field_size_boost(crop, conditions["size"]) * 0.05
    confidence = min(100.0, max(20.0, confidence))

    suitability = {
        "soil": round_half_up(soil * 100),
        "climate": round_half_up(climate * 100),
        "water": water_suitability(crop),
        "market": market_suitability(crop),
    }

    yield_min, yield_max = crop["yield_range"]
    price = crop["market"]["base_price"]
    revenue = (yield_min + yield_max) / 2 * price
    profitability = round_half_up((revenue - crop["investment_cost"]) / crop["investment_cost"] * 100)
    multiplier = (soil + climate) / 2

    recommendation = {
        "name": crop["name"],
        "confidence": round_half_up(confidence),
        "description": describe(crop, suitability),
        "rotation_benefit": rotation_benefit(crop, conditions.get("current_crop")),
        "suitability_factors": suitability,
        "economic_viability": {
            "profitability_score": max(0, profitability),
            "investment_required": crop["investment_cost"],
            "expected_revenue": round_half_up(revenue),
        },
        "planting_window": PLANTING_WINDOWS.get(crop["name"], DEFAULT_PLANTING_WINDOW),
        "expected_yield": {
            "min": round_half_up(yield_min * multiplier),
            "max": round_half_up(yield_max * multiplier),
            "unit": "kg/ha",
        },
        "growing_period_days": crop["growing_period"],
    }
    if include_disease_risk:
        risks = crop["disease_risks"]
        recommendation["disease_risk"] = {
            "level": "high" if len(risks) > 2 else "medium" if len(risks) > 1 else "low",
            "common_diseases": list(risks),
        }
    if include_market_data:
        recommendation["market_outlook"] = {
            "current_price": price,
            "price_trend": price_trend(crop),
            "demand_level": crop["market"]["demand"],
        }
    return recommendation


def rank_crops(conditions: Dict, month: int, limit: int = 5,
               include_market_data: bool = True, include_disease_risk: bool = True) -> List[Dict]:
    scored = [
        score_crop(crop, conditions, month, include_market_data, include_disease_risk)
        for crop in CROP_CATALOGUE
    ]
    # sorted() is stable, so catalogue order breaks ties
    return sorted(scored, key=lambda r: r["confidence"], reverse=True)[:max(1, limit)]


def determine_intent(message: str) -> str:
    lowered = message.lower()
    for intent, words in CHAT_INTENTS:
        if any(word in lowered for word in words):
            return intent
    return "general"


def _predecessors(name: str) -> str:
    lowered = name.lower()
    before = [crop.title() for crop, after in ROTATION_PAIRS.items() if lowered in after]
    return ", ".join(before) or "Any crop from a different family"


def _successors(name: str) -> str:
    return ", ".join(c.title() for c in ROTATION_PAIRS.get(name.lower(), [])) or "A legume or cover crop"


def selection_reply(crops: List[Dict], region: str, soil_type: str) -> str:
    lines = [f"🌱 **Crop Selection Recommendations for {region}**", ""]
    for i, crop in enumerate(crops, 1):
        lines.append(f"**{i}. {crop['name']}** ({crop['confidence']}% match)")
        lines.append(f"• **Why recommended:** {crop['description']}")
        lines.append(f"• **Economic outlook:** {crop['economic_viability']['profitability_score']}% profitability")
        if "disease_risk" in crop:
            lines.append(f"• **Disease risk:** {crop['disease_risk']['level']} risk level")
        if "market_outlook" in crop:
            lines.append(f"• **Market price:** ${crop['market_outlook']['current_price']}/kg")
        lines.append("")
    lines.append(f"These rankings weigh soil compatibility with {soil_type} soil, climate, season and market demand.")
    return "\n".join(lines)


def rotation_reply(crops: List[Dict], region: str, current_crops: List[str]) -> str:
    lines = [
        f"🔄 **Crop Rotation Planning for {region}**",
        "",
        f"**Current Crops:** {', '.join(current_crops) if current_crops else 'None specified'}",
        "",
    ]
    for i, crop in enumerate(crops, 1):
        lines.append(f"**{i}. {crop['name']}**")
        lines.append(f"• **Rotation benefit:** {crop['rotation_benefit']}")
        lines.append(f"• **Best after:** {_predecessors(crop['name'])}")
        lines.append(f"• **Followed by:** {_successors(crop['name'])}")
        lines.append("")
    plan = [c["name"] for c in crops] + ["Legume crop", "Cereal crop", "Root crop"]
    lines.append("**3-Year Rotation Plan:**")
    lines.append(f"• **Year 1:** {plan[0]}")
    lines.append(f"• **Year 2:** {plan[1]}")
    lines.append(f"• **Year 3:** {plan[2]}")
    return "\n".join(lines)


def timing_reply(crops: List[Dict], region: str, season: str) -> str:
    lines = [f"📅 **Optimal Planting Timing - {region} ({season})**", ""]
    for crop in crops:
        window = crop["planting_window"]
        lines.append(f"**{crop['name']}:**")
        lines.append(f"• **Planting window:** {window['start']} to {window['end']} (best in {window['optimal']})")
        lines.append(f"• **Days to maturity:** about {crop['growing_period_days']} days")
        lines.append("")
    lines.append("Prepare the soil 2-4 weeks before planting and buy seed early.")
    return "\n".join(lines)


def economics_reply(crops: List[Dict], region: str) -> str:
    lines = [f"💰 **Economic Analysis - Crop Recommendations for {region}**", ""]
    for i, crop in enumerate(crops, 1):
        economics = crop["economic_viability"]
        net = economics["expected_revenue"] - economics["investment_required"]
        lines.append(f"**{i}. {crop['name']}** - {economics['profitability_score']}% ROI")
        lines.append(f"• **Investment required:** ${economics['investment_required']}/ha")
        lines.append(f"• **Expected revenue:** ${economics['expected_revenue']}/ha")
        lines.append(f"• **Net profit:** ${net}/ha")
        lines.append("")
    lines.append("Secure buyers before planting where you can, and stagger plantings for steady income.")
    return "\n".join(lines)


def suitability_reply(crops: List[Dict], region: str, soil_type: str) -> str:
    lines = [f"🌍 **Crop Suitability for {soil_type.title()} Soil in {region}**", ""]
    for crop in crops:
        factors = crop["suitability_factors"]
        lines.append(f"**{crop['name']}** ({crop['confidence']}% match)")
        lines.append(f"• Soil {factors['soil']}% · Climate {factors['climate']}% · "
                     f"Water {factors['water']}% · Market {factors['market']}%")
        lines.append("")
    return "\n".join(lines).rstrip()


def general_reply(crops: List[Dict], region: str) -> str:
    names = ", ".join(f"{c['name']} ({c['confidence']}%)" for c in crops)
    return (f"🌾 **Crop Recommendations for {region}**\n\n"
            f"The best matches for your conditions are {names}.\n\n"
            f"Ask me which crop to plant, what to rotate, when to plant, or which is most profitable.")


class CropRecommendationService:
    """
    Ranked crop recommendations for a farmer's field.
    """

    def __init__(self, db=None, clock=None):
        self._db = db
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def _field(self, field_id: str, user_id: str) -> Dict:
        response = self.db.table("fields")\
            .select("*")\
            .eq("id", field_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Field not found")
        return response.data[0]

    def _profile(self, user_id: str) -> Dict:
        try:
            rows = self.db.table("profiles").select("*").eq("id", user_id).limit(1).execute().data or []
        except Exception as e:
            logger.warning(f"⚠️ Could not fetch user profile: {e}")
            return {}
        return rows[0] if rows else {}

    def _log_request(self, user_id: str, field_id: Optional[str], parameters: Dict, count: int):
        try:
            self.db.table("recommendation_requests").insert({
                "user_id": user_id,
                "field_id": field_id,
                "request_type": "crop_recommendations",
                "parameters": parameters,
                "results_count": count,
            }).execute()
        except Exception as e:
            logger.warning(f"⚠️ Failed to log recommendation request: {e}")

    def recommend(self, user_id: str, field_id: Optional[str] = None, field_data: Optional[Dict] = None,
                  include_market_data: bool = True, include_disease_risk: bool = True,
                  max_recommendations: int = 5) -> Dict:
        field = field_data if field_data is not None else self._field(field_id, user_id)
        conditions = field_conditions(field, self._profile(user_id))
        now = self._now()

        crops = rank_crops(conditions, now.month, max_recommendations, include_market_data, include_disease_risk)
        logger.info(
            f"🌾 {len(crops)} crop recommendations for field {field_id or 'adhoc'} "
            f"({conditions['soil_type']} soil, {conditions['climate_zone']}, top: {crops[0]['name']})"
        )

        self._log_request(user_id, field_id, {
            "include_market_data": include_market_data,
            "include_disease_risk": include_disease_risk,
            "max_recommendations": max_recommendations,
        }, len(crops))

        return {
            "crops": crops,
            "metadata": {
                "field_id": field_id,
                "user_id": user_id,
                "region": conditions["region"],
                "climate_zone": conditions["climate_zone"],
                "soil_type": conditions["soil_type"],
                "elevation": conditions["elevation"],
                "generated_at": now.isoformat(),
                "version": ENGINE_VERSION,
            },
        }

    def chat(self, user_id: str, message: str, field_id: Optional[str] = None,
             location: Optional[Dict] = None, soil_type: Optional[str] = None,
             current_crops: Optional[List[str]] = None, current_season: Optional[str] = None) -> Dict:
        intent = determine_intent(message)
        current_crops = current_crops or []

        if field_id:
            field = self._field(field_id, user_id)
        else:
            field = {"location": location, "soil_type": soil_type, "size": 1,
                     "crop_type": current_crops[0] if current_crops else None}
        result = self.recommend(user_id, field_id, field_data=field, max_recommendations=CHAT_RECOMMENDATIONS)
        crops = result["crops"]

        location = location or {}
        region = location.get("region") or location.get("country") or result["metadata"]["region"]
        soil = result["metadata"]["soil_type"]

        if intent == "selection":
            content = selection_reply(crops, region, soil)
        elif intent == "rotation":
            content = rotation_reply(crops, region, current_crops)
        elif intent == "timing":
            content = timing_reply(crops, region, current_season or "current season")
        elif intent == "economics":
            content = economics_reply(crops, region)
        elif intent == "suitability":
            content = suitability_reply(crops, region, soil)
        else:
            content = general_reply(crops, region)

        logger.info(f"💬 Crop recommendation chat answered (intent={intent})")
        return {
            "content": content,
            "intent": intent,
            "confidence": CHAT_CONFIDENCE,
            "agent_type": "crop_recommendations",
            "recommendations": crops,
        }
