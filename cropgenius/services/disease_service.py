"""
Crop disease detection
Gemini vision diagnosis with a 24h result cache, plus PlantNet species identification
"""

import base64
import binascii
import hashlib
import logging
import re
import time
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from cropgenius.clients.gemini import GeminiClient, extract_json, image_part, text_part
from cropgenius.clients.plantnet import PlantNetClient
from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import InvalidFieldDataError, ParsingError, ValidationError
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MIN_IMAGE_BYTES = 1024
CACHE_MAX_ENTRIES = 1000

SEVERITIES = ("low", "medium", "high", "critical")
SPREAD_RISKS = ("low", "medium", "high")

LIST_DEFAULTS = {
    "symptoms": ["Visual inspection required"],
    "immediate_actions": ["Consult agricultural expert"],
    "preventive_measures": ["Monitor crop regularly"],
    "organic_solutions": ["Use organic treatments"],
    "inorganic_solutions": ["Use chemical treatments"],
    "recommended_products": ["Consult local supplier"],
}

DISEASE_BY_NAME = {
    "zea mays": "Healthy maize",
    "oryza sativa": "Healthy rice",
    "triticum aestivum": "Healthy wheat",
    "gossypium": "Healthy cotton",
    "solanum lycopersicum": "Healthy tomato",
    "solanum tuberosum": "Healthy potato",
    "puccinia": "Rust disease",
    "pyricularia": "Rice blast",
    "rhizoctonia": "Sheath blight",
    "fusarium": "Fusarium wilt",
    "xanthomonas": "Bacterial blight",
    "alternaria": "Alternaria leaf spot",
    "cercospora": "Cercospora leaf spot",
}

_DATA_URL = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

DIAGNOSIS_PROMPT = """You are a world-class agricultural pathologist. Analyze this {crop} plant image and provide an expert diagnosis.

Location: {lat}, {lng}

Tasks:
1. Confirm the crop species from visual characteristics
2. Detect any diseases, pests, nutrient deficiencies, or health issues
3. Provide an accurate diagnosis with a confidence level
4. Recommend specific treatments available to smallholder farmers in Africa

JSON Response:
{{
  "disease_name": "Exact disease/pest/condition name",
  "scientific_name": "Scientific name",
  "confidence": 85,
  "severity": "low|medium|high|critical",
  "affected_area_percentage": 25,
  "symptoms": ["Specific symptoms observed"],
  "immediate_actions": ["Urgent treatment steps"],
  "preventive_measures": ["Prevention methods"],
  "organic_solutions": ["Organic treatments"],
  "inorganic_solutions": ["Chemical treatments"],
  "recommended_products": ["Specific product names"],
  "economic_impact": {{"yield_loss_percentage": 10, "revenue_loss_usd": 50, "treatment_cost_usd": 15}},
  "recovery_timeline": "Recovery timeframe",
  "spread_risk": "low|medium|high"
}}

Analyze and respond with JSON only:"""


def validate_image(image_base64: str) -> str:
    """Strip any data URL prefix and check the decoded size. Returns clean base64."""
    if not image_base64:
        raise ValidationError("Image is required")
    cleaned = _DATA_URL.sub("", image_base64.strip())
    try:
        raw = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image must be valid base64")
    if len(raw) > MAX_IMAGE_BYTES:
        raise ValidationError("Image is larger than 10MB")
    if len(raw) < MIN_IMAGE_BYTES:
        raise ValidationError("Image is too small to analyse")
    return cleaned


def image_hash(image_base64: str) -> str:
    return hashlib.sha256(image_base64.encode("ascii")).hexdigest()[:16]


def cache_key(image_base64: str, crop_type: str, lat: float, lng: float) -> str:
    return f"{image_hash(image_base64)}:{crop_type.lower()}:{round(lat, 2)}:{round(lng, 2)}"


def _clamp(value, low: float = 0, high: float = 100, default: float = 0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = default
    return max(low, min(high, number))


def fallback_diagnosis() -> Dict:
    return {
        "disease_name": "General Plant Health Assessment",
        "scientific_name": None,
        "confidence": 60,
        "severity": "medium",
        "affected_area_percentage": 20,
        "symptoms": ["Image analysis required for detailed symptoms"],
        "immediate_actions": ["Consult local agricultural extension officer", "Monitor plant closely"],
        "preventive_measures": ["Use certified seeds", "Practice crop rotation", "Maintain field hygiene"],
        "organic_solutions": ["Neem oil application", "Compost tea spray", "Improved air circulation"],
        "inorganic_solutions": ["Broad-spectrum fungicide", "Copper-based treatment"],
        "recommended_products": ["Local agricultural store recommendations"],
        "economic_impact": {"yield_loss_percentage": 0, "revenue_loss_usd": 0, "treatment_cost_usd": 0},
        "recovery_timeline": "1-2 weeks with proper care",
        "spread_risk": "medium",
    }


def sanitize_diagnosis(parsed: Dict) -> Dict:
    diagnosis = {
        "disease_name": parsed.get("disease_name") or "Unknown Disease",
        "scientific_name": parsed.get("scientific_name"),
        "confidence": _clamp(parsed.get("confidence"), default=50),
        "severity": parsed.get("severity") if parsed.get("severity") in SEVERITIES else "medium",
        "affected_area_percentage": _clamp(parsed.get("affected_area_percentage")),
        "recovery_timeline": parsed.get("recovery_timeline") or "Consult expert for timeline",
        "spread_risk": parsed.get("spread_risk") if parsed.get("spread_risk") in SPREAD_RISKS else "medium",
    }
    for key, default in LIST_DEFAULTS.items():
        value = parsed.get(key)
        diagnosis[key] = value if isinstance(value, list) and value else list(default)

    impact = parsed.get("economic_impact") if isinstance(parsed.get("economic_impact"), dict) else {}
    diagnosis["economic_impact"] = {
        "yield_loss_percentage": _clamp(impact.get("yield_loss_percentage")),
        "revenue_loss_usd": max(0.0, _clamp(impact.get("revenue_loss_usd"), high=float("inf"))),
        "treatment_cost_usd": max(0.0, _clamp(impact.get("treatment_cost_usd"), high=float("inf"))),
    }
    return diagnosis


def infer_disease(scientific_name: str) -> str:
    lowered = scientific_name.lower()
    for key, disease in DISEASE_BY_NAME.items():
        if key in lowered:
            return disease
    return "General plant health issue"


def severity_from_score(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    return "low"


def treatment_for(disease_name: str) -> str:
    if "healthy" in disease_name.lower():
        return "Plant appears healthy. Continue regular monitoring and maintenance practices."
    return ("Consult with a local agricultural extension officer for specific treatment "
            "recommendations based on your region and crop type.")


def transform_plantnet(data: Dict) -> List[Dict]:
    results = []
    for result in (data.get("results") or [])[:5]:
        species = result.get("species") or {}
        name = species.get("scientificNameWithoutAuthor") or "Unknown"
        score = result.get("score") or 0
        disease = infer_disease(name)
        results.append({
            "scientific_name": name,
            "common_names": species.get("commonNames") or [],
            "family": (species.get("family") or {}).get("scientificNameWithoutAuthor") or "Unknown",
            "genus": (species.get("genus") or {}).get("scientificNameWithoutAuthor") or "Unknown",
            "confidence": round(score * 100),
            "disease_name": disease,
            "severity": severity_from_score(score),
            "treatment": treatment_for(disease),
        })
    return results


class DiseaseService:
    def __init__(self, db=None, gemini: Optional[GeminiClient] = None,
                 plantnet: Optional[PlantNetClient] = None, cache: Optional[ResultCache] = None):
        self._db = db
        self.gemini = gemini or GeminiClient()
        self.plantnet = plantnet or PlantNetClient()
        self.cache = cache or ResultCache(ttl=settings.DISEASE_CACHE_TTL, maxsize=CACHE_MAX_ENTRIES)
        self._usage_day: Optional[date] = None
        self.daily_usage = 0

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def _count_usage(self):
        today = datetime.now(timezone.utc).date()
        if self._usage_day != today:
            self._usage_day = today
            self.daily_usage = 0
        self.daily_usage += 1

    async def diagnose(self, image_base64: str, crop_type: str, lat: float, lng: float,
                       user_id: Optional[str] = None) -> Dict:
        if not crop_type:
            raise InvalidFieldDataError("Crop type is required")
        image = validate_image(image_base64)

        key = cache_key(image, crop_type, lat, lng)
        cached = self.cache.get(key)
        if cached:
            logger.info("🎯 Using cached diagnosis result")
            return {**cached, "cached": True}

        started = time.monotonic()
        prompt = DIAGNOSIS_PROMPT.format(crop=crop_type, lat=lat, lng=lng)
        text, _usage = await self.gemini.generate(
            [text_part(prompt), image_part(image)],
            {"temperature": 0.1, "topK": 1, "topP": 0.8, "maxOutputTokens": 2048},
        )
        self._count_usage()

        try:
            diagnosis = sanitize_diagnosis(extract_json(text))
        except ParsingError as e:
            logger.warning(f"⚠️ Could not parse diagnosis, using general assessment: {e}")
            diagnosis = fallback_diagnosis()

        result = {
            **diagnosis,
            "crop_type": crop_type,
            "source_api": "gemini",
            "processing_time_ms": int((time.monotonic() - started) * 1000),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cached": False,
        }
        self.cache.set(key, result)

        if user_id:
            self._save_scan(user_id, result, lat, lng)

        logger.info(
            f"✅ Diagnosis complete: {result['disease_name']} "
            f"({result['confidence']}% confidence) in {result['processing_time_ms']}ms"
        )
        return result

    def _save_scan(self, user_id: str, result: Dict, lat: float, lng: float):
        try:
            self.db.table("crop_scans").insert({
                "user_id": user_id,
                "crop_type": result["crop_type"],
                "disease_name": result["disease_name"],
                "confidence": result["confidence"],
                "severity": result["severity"],
                "location": {"lat": lat, "lng": lng},
                "result": result,
                "created_at": result["timestamp"],
            }).execute()
        except Exception as e:
            logger.error(f"❌ Error saving crop scan: {e}")

    async def identify_plant(self, image_base64: str) -> List[Dict]:
        image = validate_image(image_base64)
        data = await self.plantnet.identify(image, organ="leaf")
        results = transform_plantnet(data)
        logger.info(f"🌿 PlantNet returned {len(results)} candidates")
        return results

    def history(self, user_id: str, limit: int = 20) -> List[Dict]:
        try:
            response = self.db.table("crop_scans")\
                .select("*")\
                .eq("user_id", user_id)\
                .order("created_at", desc=True)\
                .limit(limit)\
                .execute()
            return response.data if response.data else []
        except Exception as e:
            logger.error(f"❌ Error fetching scan history: {e}")
            return []

    def cache_status(self) -> Dict:
        return {**self.cache.status(), "daily_usage": self.daily_usage}
