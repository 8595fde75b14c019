"""
Field creation wizard
A six step draft that survives app restarts: each step is validated and merged into
a per-user row in field_drafts until the farmer submits or discards it.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from cropgenius.core.errors import InvalidFieldDataError, NotFoundError, ValidationError
from cropgenius.core.supabase import get_supabase
from cropgenius.services.fields_service import FieldService, polygon_area_hectares, to_unit

logger = logging.getLogger(__name__)

TOTAL_STEPS = 6

STEP_NAMES = {
    1: "name",
    2: "location",
    3: "crop",
    4: "soil_irrigation",
    5: "size",
    6: "planting_date",
}

SOIL_TYPES = ("clay", "sandy", "loam", "silt", "rocky", "unknown")
IRRIGATION_TYPES = ("rain_fed", "drip", "sprinkler", "flood", "manual", "none")
SIZE_UNITS = ("hectares", "acres")

MAX_NAME_LENGTH = 100
MIN_BOUNDARY_POINTS = 3
MAX_PLANTING_DAYS_AHEAD = 365


def progress(step: int) -> float:
    return round(step / TOTAL_STEPS * 100, 1)


def _point(value: Dict, label: str) -> Dict:
    try:
        lat = float(value["lat"])
        lng = float(value["lng"])
    except (KeyError, TypeError, ValueError):
        raise InvalidFieldDataError(f"{label} must have numeric lat and lng")
    if not -90 <= lat <= 90:
        raise InvalidFieldDataError(f"{label} latitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise InvalidFieldDataError(f"{label} longitude must be between -180 and 180")
    return {"lat": lat, "lng": lng}


def _validate_name(data: Dict, today: date) -> Dict:
    name = (data.get("name") or "").strip()
    if not name:
        raise InvalidFieldDataError("Field name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidFieldDataError(f"Field name must be at most {MAX_NAME_LENGTH} characters")
    return {"name": name}


def _validate_location(data: Dict, today: date) -> Dict:
    result = {}
    if data.get("location") is not None:
        result["location"] = _point(data["location"], "Location")
    if data.get("boundary") is not None:
        boundary = [_point(p, "Boundary point") for p in data["boundary"]]
        if len(boundary) < MIN_BOUNDARY_POINTS:
            raise InvalidFieldDataError(f"Boundary needs at least {MIN_BOUNDARY_POINTS} points")
        result["boundary"] = boundary
    if data.get("location_description"):
        result["location_description"] = str(data["location_description"]).strip()
    return result


def _validate_crop(data: Dict, today: date) -> Dict:
    crop = (data.get("crop_type") or "").strip()
    return {"crop_type": crop} if crop else {}


def _validate_soil_irrigation(data: Dict, today: date) -> Dict:
    result = {}
    soil = data.get("soil_type")
    if soil is not None:
        if soil not in SOIL_TYPES:
            raise InvalidFieldDataError(f"Unknown soil type: {soil}")
        result["soil_type"] = soil
    irrigation = data.get("irrigation_type")
    if irrigation is not None:
        if irrigation not in IRRIGATION_TYPES:
            raise InvalidFieldDataError(f"Unknown irrigation type: {irrigation}")
        result["irrigation_type"] = irrigation
    return result


def _validate_size(data: Dict, today: date) -> Dict:
    result = {}
    if data.get("size") is not None:
        try:
            size = float(data["size"])
        except (TypeError, ValueError):
            raise InvalidFieldDataError("Field size must be a number")
        if size <= 0:
            raise InvalidFieldDataError("Field size must be greater than 0")
        result["size"] = size
    unit = data.get("size_unit")
    if unit is not None:
        if unit not in SIZE_UNITS:
            raise InvalidFieldDataError("Size unit must be hectares or acres")
        result["size_unit"] = unit
    return result


def _validate_planting_date(data: Dict, today: date) -> Dict:
    raw = data.get("planting_date")
    if not raw:
        return {}
    try:
        planted = date.fromisoformat(str(raw)[:10])
    except ValueError:
        raise InvalidFieldDataError("Planting date must be an ISO date (YYYY-MM-DD)")
    if planted > today + timedelta(days=MAX_PLANTING_DAYS_AHEAD):
        raise InvalidFieldDataError("Planting date cannot be more than a year in the future")
    return {"planting_date": planted.isoformat()}


VALIDATORS = {
    1: _validate_name,
    2: _validate_location,
    3: _validate_crop,
    4: _validate_soil_irrigation,
    5: _validate_size,
    6: _validate_planting_date,
}


def validate_step(step: int, data: Dict, today: date) -> Dict:
    if step not in VALIDATORS:
        raise ValidationError(f"Step must be between 1 and {TOTAL_STEPS}")
    return VALIDATORS[step](data or {}, today)


def build_field(data: Dict) -> Dict:
    unit = data.get("size_unit") or "hectares"
    size = data.get("size")
    if not size:
        area = polygon_area_hectares(data.get("boundary") or [])
        size = to_unit(area, unit) if area else 1
    return {
        "name": data.get("name") or "Unnamed Field",
        "size": size,
        "size_unit": unit,
        "boundary": data.get("boundary"),
        "location": data.get("location"),
        "location_description": data.get("location_description"),
        "crop_type": data.get("crop_type"),
        "soil_type": data.get("soil_type"),
        "irrigation_type": data.get("irrigation_type"),
        "planting_date": data.get("planting_date"),
    }


class FieldWizard:
    def __init__(self, db=None, fields: Optional[FieldService] = None, clock=None):
        self._db = db
        self._fields = fields
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = self._fields.db if self._fields is not None else get_supabase()
        return self._db

    @property
    def fields(self) -> FieldService:
        if self._fields is None:
            self._fields = FieldService(db=self._db)
        return self._fields

    def _load(self, user_id: str) -> Optional[Dict]:
        response = self.db.table("field_drafts")\
            .select("*")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return response.data[0] if response.data else None

    def _require(self, user_id: str) -> Dict:
        draft = self._load(user_id)
        if not draft:
            raise NotFoundError("No field draft in progress")
        return draft

    def _save(self, draft: Dict) -> Dict:
        draft = {
            **draft,
            "progress": progress(draft["step"]),
            "updated_at": self._now().isoformat(),
        }
        response = self.db.table("field_drafts").upsert(draft, on_conflict="user_id").execute()
        return response.data[0] if response.data else draft

    def start(self, user_id: str, default_location: Optional[Dict] = None) -> Dict:
        draft = self._load(user_id)
        if draft:
            logger.info(f"📝 Resuming field draft for {user_id} at step {draft.get('step')}")
            return draft

        data = {}
        if default_location:
            data["location"] = _point(default_location, "Location")
        return self._save({
            "user_id": user_id,
            "step": 1,
            "data": data,
            "completed_steps": [],
            "skipped_steps": [],
        })

    def update(self, user_id: str, step: int, data: Dict) -> Dict:
        draft = self._require(user_id)
        cleaned = validate_step(step, data, self._now().date())

        completed: List[int] = list(draft.get("completed_steps") or [])
        if step not in completed:
            completed.append(step)
        skipped = [s for s in (draft.get("skipped_steps") or []) if s != step]

        return self._save({
            **draft,
            "data": {**(draft.get("data") or {}), **cleaned},
            "completed_steps": sorted(completed),
            "skipped_steps": skipped,
        })

    def next(self, user_id: str) -> Dict:
        draft = self._require(user_id)
        if draft["step"] == 1 and not (draft.get("data") or {}).get("name"):
            raise InvalidFieldDataError("Give your field a name before continuing")
        return self._save({**draft, "step": min(TOTAL_STEPS, draft["step"] + 1)})

    def back(self, user_id: str) -> Dict:
        draft = self._require(user_id)
        return self._save({**draft, "step": max(1, draft["step"] - 1)})

    def skip(self, user_id: str) -> Dict:
        draft = self._require(user_id)
        step = draft["step"]
        if step == 1:
            raise ValidationError("The field name step cannot be skipped")
        skipped = list(draft.get("skipped_steps") or [])
        if step not in skipped:
            skipped.append(step)
        return self._save({
            **draft,
            "step": min(TOTAL_STEPS, step + 1),
            "skipped_steps": sorted(skipped),
        })

    def submit(self, user_id: str) -> Dict:
        draft = self._require(user_id)
        field = self.fields.create(user_id, build_field(draft.get("data") or {}))
        self.discard(user_id)
        logger.info(f"✅ Field wizard completed for {user_id}: {field.get('id')}")
        return field

    def discard(self, user_id: str) -> bool:
        self.db.table("field_drafts").delete().eq("user_id", user_id).execute()
        return True
