"""
Daily genius tasks
Gemini-generated, farm-specific to-do items for each farmer, one batch per day
"""

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from cropgenius.clients.gemini import GeminiClient, extract_json
from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import NotFoundError, ParsingError, ValidationError
from cropgenius.core.events import event_manager
from cropgenius.core.settings import settings
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.3,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}

OPEN_STATUSES = ["pending", "in_progress"]

TASK_PROMPT = """You are CropGenius AI, the most advanced farming assistant for African agriculture.

FARMER CONTEXT:
- Location: {location}
- Number of fields: {field_count}
- Today's date: {today}
- Existing tasks today: {existing}

FIELDS DATA:
{fields}

CURRENT SEASON: {season}

TASK: Generate 3-5 highly specific, actionable daily tasks for this farmer today.

RULES:
1. Tasks must be farm-specific, based on the field data above
2. Consider seasonal timing, weather patterns and crop growth stages
3. Include precise timing (morning, afternoon, evening)
4. Each task must have a clear, measurable outcome
5. Order by urgency and impact on farm productivity

RESPONSE FORMAT (JSON):
{{
  "tasks": [
    {{
      "title": "Specific action for a specific crop/field",
      "description": "Detailed instructions with timing and expected outcome",
      "category": "IRRIGATION|PEST_CONTROL|FERTILIZATION|MONITORING|HARVESTING|PLANNING",
      "priority": 1,
      "estimated_duration": 45,
      "field_name": "Field name from data",
      "crop_type": "Specific crop",
      "confidence_score": 0.9
    }}
  ],
  "reasoning": "Brief explanation of why these tasks were prioritized"
}}"""


def season_for(month: int) -> str:
    if month <= 5:
        return "Dry season - Focus on irrigation and soil prep"
    return "Wet season - Focus on pest control and harvesting"


def describe_fields(fields: List[Dict]) -> str:
    if not fields:
        return "- No fields configured yet"
    lines = []
    for field in fields:
        lines.append(
            f"- Field: {field.get('name') or 'Unnamed'} ({field.get('size') or 1} {field.get('size_unit') or 'hectares'})\n"
            f"  Crop: {field.get('crop_type') or 'Mixed crops'}\n"
            f"  Soil: {field.get('soil_type') or 'Loamy'}\n"
            f"  Irrigation: {field.get('irrigation_type') or 'Rain-fed'}"
        )
    return "\n".join(lines)


def fallback_tasks(fields: List[Dict]) -> List[Dict]:
    first = fields[0] if fields else {}
    return [{
        "title": "Morning field inspection",
        "description": ("Walk through all fields to check crop health, identify any issues, "
                        "and plan the day's activities"),
        "category": "MONITORING",
        "priority": 2,
        "estimated_duration": 30,
        "field_name": first.get("name") or "Main Field",
        "crop_type": first.get("crop_type") or "Mixed crops",
        "confidence_score": 0.8,
        "generation_source": "fallback",
    }]


def _priority(value) -> int:
    try:
        return max(1, min(5, int(value)))
    except (TypeError, ValueError):
        return 2


class TaskService:
    def __init__(self, db=None, gemini: Optional[GeminiClient] = None,
                 cache: Optional[ResultCache] = None, events=None, today=None):
        self._db = db
        self.gemini = gemini or GeminiClient()
        self.cache = cache or ResultCache(ttl=settings.TASK_CACHE_TTL, maxsize=5000)
        self.events = events or event_manager
        self._today = today or (lambda: datetime.now(timezone.utc).date())

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    def _cache_key(self, user_id: str) -> str:
        return f"{user_id}:{self._today().isoformat()}"

    def _invalidate(self, user_id: str):
        self.cache.delete_prefix(f"{user_id}:")

    def todays_tasks(self, user_id: str) -> List[Dict]:
        key = self._cache_key(user_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        response = self.db.table("daily_genius_tasks")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("task_date", self._today().isoformat())\
            .in_("status", OPEN_STATUSES)\
            .order("priority")\
            .execute()
        tasks = response.data or []
        self.cache.set(key, tasks)
        return tasks

    def _context(self, user_id: str):
        fields = self.db.table("fields").select("*").eq("user_id", user_id).execute().data or []
        profile_rows = self.db.table("profiles").select("*").eq("id", user_id).limit(1).execute().data or []
        profile = profile_rows[0] if profile_rows else {}
        return fields, profile

    async def generate(self, user_id: str) -> Dict:
        existing = self.todays_tasks(user_id)
        if existing:
            return {"tasks": existing, "generated": False, "source": "existing"}

        today: date = self._today()
        fields, profile = self._context(user_id)
        logger.info(f"📊 Task context: {len(fields)} fields, location: {profile.get('location') or 'Kenya'}")

        prompt = TASK_PROMPT.format(
            location=profile.get("location") or "Kenya, East Africa",
            field_count=len(fields),
            today=today.isoformat(),
            existing="None",
            fields=describe_fields(fields),
            season=season_for(today.month),
        )

        tokens_used = 0
        source = "gemini"
        try:
            text, usage = await self.gemini.generate([{"text": prompt}], GENERATION_CONFIG)
            tokens_used = usage.get("totalTokenCount", 0)
            ai_tasks = extract_json(text).get("tasks") or []
            if not ai_tasks:
                raise ParsingError("No tasks in AI response")
        except (ParsingError, AttributeError) as e:
            logger.warning(f"⚠️ Could not parse generated tasks, using fallback: {e}")
            ai_tasks = fallback_tasks(fields)
            source = "fallback"

        field_ids = {f.get("name"): f.get("id") for f in fields}
        rows = [
            {
                "user_id": user_id,
                "field_id": field_ids.get(task.get("field_name")),
                "title": task.get("title") or "Farm task",
                "description": task.get("description") or "",
                "category": (task.get("category") or "MONITORING").upper(),
                "priority": _priority(task.get("priority")),
                "estimated_duration": task.get("estimated_duration"),
                "field_name": task.get("field_name"),
                "crop_type": task.get("crop_type"),
                "confidence_score": task.get("confidence_score"),
                "generation_source": task.get("generation_source") or source,
                "task_date": today.isoformat(),
                "status": "pending",
            }
            for task in ai_tasks
            if isinstance(task, dict)
        ]

        saved = self.db.table("daily_genius_tasks").insert(rows).execute().data or rows
        self._log_ai_usage(user_id, len(fields), profile.get("location"), len(rows), tokens_used, source)
        self._invalidate(user_id)

        logger.info(f"🎯 Generated {len(saved)} tasks for user {user_id}")
        await self.events.notify(user_id, "tasks_updated", {"count": len(saved), "source": source})
        return {"tasks": saved, "generated": True, "source": source}

    def _log_ai_usage(self, user_id, field_count, location, task_count, tokens_used, source):
        try:
            self.db.table("ai_service_logs").insert({
                "user_id": user_id,
                "service_type": "daily-task-generation",
                "request_data": {"fields_count": field_count, "location": location},
                "response_data": {"tasks_generated": task_count, "ai_source": source},
                "tokens_used": tokens_used,
                "success": True,
            }).execute()
        except Exception as e:
            logger.error(f"❌ Failed to log AI usage: {e}")

    def _update_task(self, task_id: str, user_id: str, changes: Dict) -> Dict:
        changes = {**changes, "updated_at": datetime.now(timezone.utc).isoformat()}
        response = self.db.table("daily_genius_tasks")\
            .update(changes)\
            .eq("id", task_id)\
            .eq("user_id", user_id)\
            .execute()
        if not response.data:
            raise NotFoundError("Task not found")
        self._invalidate(user_id)
        return response.data[0]

    def complete(self, task_id: str, user_id: str, completion_data: Optional[Dict] = None) -> Dict:
        task = self._update_task(task_id, user_id, {
            "status": "completed",
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "completion_data": completion_data or {},
        })
        logger.info(f"✅ Task completed: {task_id}")
        return task

    def skip(self, task_id: str, user_id: str, reason: Optional[str] = None) -> Dict:
        task = self._update_task(task_id, user_id, {"status": "skipped", "skip_reason": reason})
        logger.info(f"⏭️ Task skipped: {task_id}")
        return task

    async def refresh(self, user_id: str) -> Dict:
        self.db.table("daily_genius_tasks")\
            .update({"status": "expired"})\
            .eq("user_id", user_id)\
            .eq("task_date", self._today().isoformat())\
            .in_("status", OPEN_STATUSES)\
            .execute()
        self._invalidate(user_id)
        return await self.generate(user_id)

    def submit_feedback(self, task_id: str, user_id: str, feedback: Dict) -> Dict:
        for key in ("usefulness_score", "clarity_score", "timing_score"):
            score = feedback.get(key)
            if score is None or not 1 <= int(score) <= 5:
                raise ValidationError(f"{key} must be between 1 and 5")

        response = self.db.table("task_feedback").insert({
            "task_id": task_id,
            "user_id": user_id,
            **feedback,
        }).execute()
        return response.data[0] if response.data else {}
