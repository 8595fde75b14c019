"""
Field NDVI analysis from Sentinel-2 imagery
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import numpy as np

from cropgenius.clients.sentinel_hub import SentinelHubClient
from cropgenius.core.errors import InvalidFieldDataError, NotFoundError, SatelliteDataError
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

DEFAULT_COORDINATES = [{"lat": -1.2921, "lng": 36.8219}]
PROBLEM_DROP = 0.15
HISTORY_POINTS = 14


def field_bounds(coordinates: List[Dict]) -> Dict:
    if not coordinates:
        raise InvalidFieldDataError("Field coordinates are required")
    lats = [float(c["lat"]) for c in coordinates]
    lngs = [float(c["lng"]) for c in coordinates]
    if len(coordinates) == 1:
        # Single point: analyse a ~1km box around it
        pad = 0.005
        return {"north": lats[0] + pad, "south": lats[0] - pad, "east": lngs[0] + pad, "west": lngs[0] - pad}
    return {"north": max(lats), "south": min(lats), "east": max(lngs), "west": min(lngs)}


def health_score(ndvi: float) -> float:
    if ndvi > 0.7:
        return 0.9
    if ndvi > 0.5:
        return 0.7
    if ndvi > 0.3:
        return 0.5
    return 0.3


def recommendations(ndvi: float) -> List[str]:
    if ndvi < 0.3:
        return [
            "Vegetation is sparse or stressed: check soil moisture and irrigate if dry",
            "Scout the field for pests and disease damage",
            "Consider a soil test to rule out nutrient deficiency",
        ]
    if ndvi < 0.5:
        return [
            "Moderate vegetation vigour: consider a nitrogen top-dressing",
            "Monitor leaves for early disease symptoms",
        ]
    return [
        "Crop vigour is good: maintain current practices",
        "Keep monitoring weekly for changes",
    ]


def problem_areas(series: List[Dict], centroid: Dict) -> List[Dict]:
    """Days whose NDVI fell clearly below the period average"""
    if len(series) < 2:
        return []
    values = np.array([p["mean"] for p in series])
    mean = float(values.mean())
    areas = []
    for point in series:
        if point["mean"] < mean - PROBLEM_DROP:
            areas.append({
                "date": point["date"],
                "lat": centroid["lat"],
                "lng": centroid["lng"],
                "ndvi": round(point["mean"], 3),
                "severity": "high" if point["mean"] < 0.3 else "medium",
                "issue": "Vegetation stress detected" if point["mean"] < 0.3 else "Below-average vigour",
            })
    return areas


class SatelliteService:
    def __init__(self, db=None, client: Optional[SentinelHubClient] = None, clock=None):
        self._db = db
        self.client = client or SentinelHubClient()
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def _field_coordinates(self, field_id: str, user_id: Optional[str]) -> List[Dict]:
        query = self.db.table("fields").select("id, boundary, location").eq("id", field_id)
        if user_id:
            query = query.eq("user_id", user_id)
        response = query.limit(1).execute()
        if not response.data:
            raise NotFoundError("Field not found")
        field = response.data[0]
        boundary = field.get("boundary") or []
        if boundary:
            return boundary
        if field.get("location"):
            return [field["location"]]
        return DEFAULT_COORDINATES

    async def analyze(self, coordinates: Optional[List[Dict]] = None, field_id: Optional[str] = None,
                      user_id: Optional[str] = None, days: int = HISTORY_POINTS) -> Dict:
        if not coordinates and field_id:
            coordinates = self._field_coordinates(field_id, user_id)
        coordinates = coordinates or DEFAULT_COORDINATES

        bounds = field_bounds(coordinates)
        bbox = [bounds["west"], bounds["south"], bounds["east"], bounds["north"]]
        end = self._now()
        start = end - timedelta(days=days)
        start_iso = start.strftime("%Y-%m-%dT00:00:00Z")
        end_iso = end.strftime("%Y-%m-%dT23:59:59Z")

        series = await self.client.ndvi_statistics(bbox, start_iso, end_iso)
        if not series:
            raise SatelliteDataError("No cloud-free imagery available for this field in the selected period")

        series = series[-HISTORY_POINTS:]
        ndvi = round(float(series[-1]["mean"]), 3)
        centroid = {
            "lat": (bounds["north"] + bounds["south"]) / 2,
            "lng": (bounds["east"] + bounds["west"]) / 2,
        }

        analysis = {
            "field_id": field_id,
            "ndvi": ndvi,
            "health_score": health_score(ndvi),
            "bounds": bounds,
            "ndvi_history": [{"date": p["date"], "ndvi": round(p["mean"], 3)} for p in series],
            "problem_areas": problem_areas(series, centroid),
            "recommendations": recommendations(ndvi),
            "image_url": self.client.wms_preview_url(bbox, start_iso, end_iso),
            "analysis_date": end.isoformat(),
            "data_source": "Sentinel-2 L2A",
        }

        if user_id:
            self._save(user_id, analysis)

        logger.info(f"🛰️ NDVI analysis complete: ndvi={ndvi} health={analysis['health_score']}")
        return analysis

    def _save(self, user_id: str, analysis: Dict):
        try:
            self.db.table("satellite_data").insert({
                "user_id": user_id,
                "field_id": analysis["field_id"],
                "ndvi": analysis["ndvi"],
                "health_score": analysis["health_score"],
                "image_url": analysis["image_url"],
                "analysis": analysis,
                "created_at": analysis["analysis_date"],
            }).execute()
        except Exception as e:
            logger.error(f"❌ Error saving satellite analysis: {e}")
