"""
Farmer fields
Owner-scoped CRUD over the fields table, the default farm and boundary area
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import numpy as np

from cropgenius.core.errors import DatabaseError, NotFoundError
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6378137.0
SQUARE_METERS_PER_HECTARE = 10_000
ACRES_PER_HECTARE = 2.47105

DEFAULT_FARM_NAME = "My Farm"


def polygon_area_hectares(boundary: List[Dict]) -> float:
    """
    Area of a lat/lng ring on the sphere, in hectares

    Args:
        boundary: Points with 'lat' and 'lng' in degrees. The ring may be open or closed.

    Returns:
        Area in hectares, 0 for fewer than 3 points
    """
    if not boundary or len(boundary) < 3:
        return 0.0

    lats = np.radians([float(p["lat"]) for p in boundary])
    lngs = np.radians([float(p["lng"]) for p in boundary])
    next_lats = np.roll(lats, -1)
    next_lngs = np.roll(lngs, -1)

    # Spherical excess summed edge by edge
    excess = np.sum((next_lngs - lngs) * (2 + np.sin(lats) + np.sin(next_lats)))
    area_m2 = abs(float(excess)) * EARTH_RADIUS_M ** 2 / 2
    return round(area_m2 / SQUARE_METERS_PER_HECTARE, 4)


def to_unit(hectares: float, unit: str) -> float:
    if unit == "acres":
        return round(hectares * ACRES_PER_HECTARE, 4)
    return hectares


def _coordinates(value) -> Optional[List[Dict]]:
    if value is None:
        return None
    return [{"lat": float(p["lat"]), "lng": float(p["lng"])} for p in value]


class FieldService:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def ensure_default_farm(self, user_id: str) -> Dict:
        response = self.db.table("farms")\
            .select("id, name")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if response.data:
            return response.data[0]

        created = self.db.table("farms").insert({
            "name": DEFAULT_FARM_NAME,
            "user_id": user_id,
            "size_unit": "hectares",
        }).execute()
        if not created.data:
            raise DatabaseError("Failed to create default farm")
        logger.info(f"🏡 Created default farm for user {user_id}")
        return created.data[0]

    def create(self, user_id: str, data: Dict) -> Dict:
        row = {k: v for k, v in data.items() if v is not None}
        if "location" in row:
            row["location"] = {"lat": float(row["location"]["lat"]), "lng": float(row["location"]["lng"])}
        if "boundary" in row:
            row["boundary"] = _coordinates(row["boundary"])

        unit = row.get("size_unit") or "hectares"
        row["size_unit"] = unit
        if not row.get("size"):
            area = polygon_area_hectares(row.get("boundary") or [])
            row["size"] = to_unit(area, unit) if area else 1

        if not row.get("farm_id"):
            row["farm_id"] = self.ensure_default_farm(user_id)["id"]
        row["user_id"] = user_id

        response = self.db.table("fields").insert(row).execute()
        if not response.data:
            raise DatabaseError("Failed to create field")
        field = response.data[0]
        logger.info(f"🌱 Field created: {field.get('id')} ({field.get('name')})")
        return field

    def list_for_user(self, user_id: str) -> List[Dict]:
        response = self.db.table("fields")\
            .select("*")\
            .eq("user_id", user_id)\
            .order("created_at", desc=True)\
            .execute()
        return response.data or []

    def get(self, field_id: str, user_id: str) -> Dict:
        response = self.db.table("fields")\
            .select("*")\
            .eq("id", field_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Field not found")
        return response.data[0]

    def update(self, field_id: str, user_id: str, changes: Dict) -> Dict:
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self.get(field_id, user_id)
        changes["updated_at"] = datetime.now(timezone.utc).isoformat()

        response = self.db.table("fields")\
            .update(changes)\
            .eq("id", field_id)\
            .eq("user_id", user_id)\
            .execute()
        if not response.data:
            raise NotFoundError("Field not found")
        return response.data[0]

    def delete(self, field_id: str, user_id: str) -> bool:
        try:
            response = self.db.table("fields")\
                .delete()\
                .eq("id", field_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            raise DatabaseError(f"Failed to delete field: {e}", original=e)
        if not response.data:
            raise NotFoundError("Field not found")
        logger.info(f"🗑️ Field deleted: {field_id}")
        return True
