import asyncio
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import NotFoundError, ValidationError
from cropgenius.services.tasks_service import TaskService, describe_fields, fallback_tasks, season_for

TODAY = date(2024, 5, 20)

FIELDS = [{"id": "field-1", "name": "River Plot", "crop_type": "maize", "size": 2, "size_unit": "acres"}]

AI_TASKS = json.dumps({"tasks": [
    {"title": "Scout River Plot for fall armyworm", "description": "Check 20 plants in a W pattern",
     "category": "pest_control", "priority": 9, "estimated_duration": 40,
     "field_name": "River Plot", "crop_type": "maize", "confidence_score": 0.9},
    {"title": "Plan top-dressing", "priority": "soon", "field_name": "Unknown Field"},
]})


def _service(fake_db, answer=AI_TASKS, events=None):
    gemini = MagicMock()
    gemini.generate = AsyncMock(return_value=(answer, {"totalTokenCount": 512}))
    events = events or MagicMock(notify=AsyncMock())
    return TaskService(db=fake_db, gemini=gemini, cache=ResultCache(ttl=300), events=events, today=lambda: TODAY)


def test_season_and_field_description():
    assert season_for(3).startswith("Dry season")
    assert season_for(8).startswith("Wet season")
    assert describe_fields([]) == "- No fields configured yet"
    assert "River Plot (2 acres)" in describe_fields(FIELDS)


def test_fallback_uses_first_field():
    task = fallback_tasks(FIELDS)[0]
    assert task["field_name"] == "River Plot"
    assert task["generation_source"] == "fallback"


def test_existing_tasks_are_returned(fake_db):
    fake_db.queue("daily_genius_tasks", [{"id": "t1", "title": "Weed"}])
    service = _service(fake_db)

    result = asyncio.run(service.generate("user-1"))

    assert result == {"tasks": [{"id": "t1", "title": "Weed"}], "generated": False, "source": "existing"}
    service.gemini.generate.assert_not_awaited()


def test_generate_normalises_ai_tasks(fake_db):
    fake_db.queue("fields", FIELDS)
    fake_db.queue("profiles", [{"id": "user-1", "location": "Nakuru, Kenya"}])
    service = _service(fake_db)

    result = asyncio.run(service.generate("user-1"))

    assert result["generated"] is True
    assert result["source"] == "gemini"
    rows = fake_db.payloads("daily_genius_tasks", "insert")[0]
    assert rows[0]["field_id"] == "field-1"
    assert rows[0]["category"] == "PEST_CONTROL"
    assert rows[0]["priority"] == 5
    assert rows[0]["task_date"] == "2024-05-20"
    assert rows[1]["field_id"] is None
    assert rows[1]["priority"] == 2
    assert rows[1]["title"] == "Plan top-dressing"

    prompt = service.gemini.generate.await_args.args[0][0]["text"]
    assert "Nakuru, Kenya" in prompt
    assert fake_db.payloads("ai_service_logs", "insert")[0]["tokens_used"] == 512
    service.events.notify.assert_awaited_once_with("user-1", "tasks_updated", {"count": 2, "source": "gemini"})


def test_generate_falls_back_on_bad_answer(fake_db):
    service = _service(fake_db, answer="Sorry, I cannot help with that.")
    result = asyncio.run(service.generate("user-1"))
    assert result["source"] == "fallback"
    assert result["tasks"][0]["title"] == "Morning field inspection"


def test_todays_tasks_are_cached(fake_db):
    fake_db.queue("daily_genius_tasks", [{"id": "t1"}])
    service = _service(fake_db)

    assert service.todays_tasks("user-1") == [{"id": "t1"}]
    assert service.todays_tasks("user-1") == [{"id": "t1"}]
    assert len(fake_db.ops("daily_genius_tasks")) == 1


def test_complete_invalidates_cache(fake_db):
    fake_db.queue("daily_genius_tasks", [{"id": "t1"}])
    fake_db.queue("daily_genius_tasks", [{"id": "t1", "status": "completed"}])
    service = _service(fake_db)
    service.todays_tasks("user-1")

    task = service.complete("t1", "user-1", {"notes": "done"})

    assert task["status"] == "completed"
    assert service.cache.get("user-1:2024-05-20") is None
    change = fake_db.payloads("daily_genius_tasks", "update")[0]
    assert change["completion_data"] == {"notes": "done"}


def test_skip_unknown_task(fake_db):
    with pytest.raises(NotFoundError):
        _service(fake_db).skip("missing", "user-1", "too wet")


def test_refresh_expires_open_tasks(fake_db):
    service = _service(fake_db, answer="no json")
    result = asyncio.run(service.refresh("user-1"))

    assert fake_db.payloads("daily_genius_tasks", "update")[0] == {"status": "expired"}
    assert result["generated"] is True


def test_feedback_scores_are_checked(fake_db):
    service = _service(fake_db)
    with pytest.raises(ValidationError):
        service.submit_feedback("t1", "user-1", {"usefulness_score": 6, "clarity_score": 3, "timing_score": 3})

    fake_db.queue("task_feedback", [{"id": "fb-1"}])
    saved = service.submit_feedback("t1", "user-1", {"usefulness_score": 5, "clarity_score": 4, "timing_score": 3})
    assert saved == {"id": "fb-1"}
