import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.errors import (
    ForbiddenError,
    GeminiAPIError,
    InvalidFieldDataError,
    NotFoundError,
    ValidationError,
)
from cropgenius.services.community_service import (
    CommunityService,
    QuestionOracle,
    display_name_fallback,
    parse_analysis,
    search_text,
)

NOW = datetime(2024, 5, 20, tzinfo=timezone.utc)


def _oracle(analysis):
    oracle = MagicMock()
    oracle.analyze = AsyncMock(return_value=analysis)
    return oracle


def _analysis(**overrides):
    analysis = {
        "category": "Pest Control",
        "tags": ["maize", "fall armyworm"],
        "preliminary_answer": "Use push-pull. Community experts will provide more detailed answers soon!",
        "confidence": 85,
        "urgency": "high",
        "is_appropriate": True,
        "moderation_reason": None,
        "crop_type": "maize",
        "farming_method": None,
    }
    analysis.update(overrides)
    return analysis


def _service(fake_db, analysis=None):
    return CommunityService(db=fake_db, oracle=_oracle(analysis or _analysis()), clock=lambda: NOW)


def _calls(fake_db, table):
    return next(calls for t, calls in fake_db.executed if t == table)


class TestAnalysis:
    def test_parse_clamps_and_defaults(self):
        analysis = parse_analysis({"confidenceScore": 150, "urgencyLevel": "urgent", "tags": "maize"})
        assert analysis["confidence"] == 100
        assert analysis["urgency"] == "medium"
        assert analysis["tags"] == []
        assert analysis["category"] == "Crop Management"
        assert analysis["is_appropriate"] is True

    def test_oracle_parses_gemini_answer(self):
        gemini = MagicMock()
        gemini.generate_json = AsyncMock(return_value=(
            {"category": "Soil Health", "confidenceScore": "72", "isAppropriate": False,
             "moderationReason": "Not farming related"},
            {},
        ))
        analysis = asyncio.run(QuestionOracle(gemini).analyze("Buy my phone", "Cheap", crop_type="none"))
        assert analysis["category"] == "Soil Health"
        assert analysis["confidence"] == 72
        assert analysis["is_appropriate"] is False
        prompt = gemini.generate_json.await_args.args[0]
        assert "Title: Buy my phone" in prompt
        assert "Crop Type: none" in prompt

    def test_oracle_failure_is_neutral(self):
        gemini = MagicMock()
        gemini.generate_json = AsyncMock(side_effect=GeminiAPIError("quota"))
        analysis = asyncio.run(QuestionOracle(gemini).analyze("t", "c"))
        assert analysis["confidence"] == 0
        assert analysis["urgency"] == "low"
        assert analysis["is_appropriate"] is True

    def test_display_name_fallback(self):
        assert display_name_fallback("abcdef123456") == "User abcdef12"


class TestQuestions:
    def test_create_question_categorises_and_rewards(self, fake_db):
        fake_db.queue("community_categories", [
            {"id": "c1", "name": "Crop Management"},
            {"id": "c2", "name": "Pest Control"},
        ])
        fake_db.queue("community_questions", [{"id": "q1"}])
        service = _service(fake_db)

        question = asyncio.run(service.create_question("user-1", {
            "title": "Holes in maize leaves",
            "content": "Small caterpillars in the whorl",
            "tags": ["maize"],
        }))

        assert question == {"id": "q1"}
        row = fake_db.payloads("community_questions", "insert")[0]
        assert row["category_id"] == "c2"
        assert row["tags"] == ["maize", "fall armyworm"]
        assert row["ai_confidence_score"] == 0.85
        assert row["crop_type"] == "maize"
        assert fake_db.payloads("rpc:update_user_reputation", "rpc") == [
            {"user_id": "user-1", "action": "question_asked"}
        ]

    def test_inappropriate_question_is_rejected(self, fake_db):
        service = _service(fake_db, _analysis(is_appropriate=False, moderation_reason="Spam"))
        with pytest.raises(InvalidFieldDataError) as exc:
            asyncio.run(service.create_question("user-1", {"title": "Win", "content": "Click here"}))
        assert exc.value.message == "Spam"
        assert fake_db.payloads("community_questions", "insert") == []

    def test_list_questions_paginates_and_enriches(self, fake_db):
        fake_db.queue("community_questions", [{"id": "q1", "user_id": "abcdef123456"}], count=31)
        fake_db.queue("rpc:get_user_display_name", "Wanjiku M.")
        service = _service(fake_db)

        result = service.list_questions(page=3, limit=10, search="maize", sort_by="vote_score", sort_order="asc")

        assert result["total"] == 31
        assert result["page"] == 3
        assert result["questions"][0]["user_display_name"] == "Wanjiku M."
        calls = _calls(fake_db, "community_questions")
        names = [name for name, _, _ in calls]
        assert "or_" in names
        assert ("order", ("vote_score",), {"desc": False}) in calls
        assert ("range", (20, 29), {}) in calls
        assert calls[0][2] == {"count": "exact"}

    def test_list_questions_rejects_unknown_sort(self, fake_db):
        with pytest.raises(ValidationError):
            _service(fake_db).list_questions(sort_by="user_id; drop table")

    def test_get_question_counts_view(self, fake_db):
        fake_db.queue("community_questions", [{"id": "q1", "view_count": 4, "user_id": None}])
        question = _service(fake_db).get_question("q1")
        assert question["view_count"] == 5
        assert question["user_display_name"] == "User "
        assert fake_db.payloads("community_questions", "update") == [{"view_count": 5}]

    def test_get_missing_question(self, fake_db):
        with pytest.raises(NotFoundError):
            _service(fake_db).get_question("missing")

    def test_search_uses_websearch(self, fake_db):
        _service(fake_db).search("maize rust")
        calls = _calls(fake_db, "community_questions")
        assert ("text_search", ("title", "maize rust"), {"options": {"type": "websearch"}}) in calls

    def test_search_text_drops_filter_syntax(self):
        assert search_text("maize, beans") == "maize beans"
        assert search_text('x%,user_id.eq.abc)') == "x user_id.eq.abc"
        assert search_text("  {}()* ") == ""
        assert search_text(None) == ""

    def test_list_questions_search_stays_one_filter(self, fake_db):
        _service(fake_db).list_questions(search="maize%,status.eq.closed), beans")

        (expression,) = fake_db.filters("community_questions", "or_")[0]
        assert expression == (
            "title.ilike.%maize status.eq.closed beans%,content.ilike.%maize status.eq.closed beans%,"
            "tags.cs.{maize status.eq.closed beans}"
        )

    def test_list_questions_blank_search_is_ignored(self, fake_db):
        _service(fake_db).list_questions(search="(*)")
        assert fake_db.filters("community_questions", "or_") == []

    def test_search_with_nothing_left_skips_the_query(self, fake_db):
        assert _service(fake_db).search('"()"') == []
        assert fake_db.executed == []

    def test_trending_window(self, fake_db):
        _service(fake_db).trending(limit=5)
        calls = _calls(fake_db, "community_questions")
        assert ("gte", ("created_at", "2024-05-13T00:00:00+00:00"), {}) in calls
        assert ("limit", (5,), {}) in calls


class TestAnswers:
    def test_answer_requires_question(self, fake_db):
        with pytest.raises(NotFoundError):
            _service(fake_db).create_answer("user-2", "missing", "Try neem")

    def test_create_answer(self, fake_db):
        fake_db.queue("community_questions", [{"id": "q1"}])
        fake_db.queue("community_answers", [{"id": "a1"}])
        answer = _service(fake_db).create_answer("user-2", "q1", "Try neem")
        assert answer == {"id": "a1"}
        assert fake_db.payloads("rpc:update_user_reputation", "rpc")[0]["action"] == "answer_given"

    def test_only_owner_can_accept(self, fake_db):
        fake_db.queue("community_answers", [
            {"id": "a1", "question_id": "q1", "user_id": "helper", "question": {"user_id": "owner"}}
        ])
        with pytest.raises(ForbiddenError):
            _service(fake_db).accept_answer("intruder", "a1")

    def test_accept_answer(self, fake_db):
        fake_db.queue("community_answers", [
            {"id": "a1", "question_id": "q1", "user_id": "helper", "question": {"user_id": "owner"}}
        ])
        result = _service(fake_db).accept_answer("owner", "a1")

        assert result == {"answer_id": "a1", "question_id": "q1", "accepted": True}
        assert fake_db.payloads("community_answers", "update") == [{"is_accepted": False}, {"is_accepted": True}]
        assert fake_db.payloads("community_questions", "update") == [{"status": "answered"}]
        assert fake_db.payloads("rpc:update_user_reputation", "rpc") == [
            {"user_id": "helper", "action": "best_answer"}
        ]


class TestVotes:
    def test_new_up_vote_rewards_author(self, fake_db):
        fake_db.queue("community_answers", [{"user_id": "author"}])
        fake_db.queue("community_answers", [{"vote_score": 3}])
        result = _service(fake_db).vote("voter", "a1", "answer", "up")

        assert result == {"action": "added", "vote_type": "up", "score": 3}
        assert fake_db.payloads("community_votes", "insert")[0]["vote_type"] == "up"
        assert fake_db.payloads("rpc:update_vote_score", "rpc") == [{"target_id": "a1", "target_type": "answer"}]
        assert fake_db.payloads("rpc:update_user_reputation", "rpc") == [
            {"user_id": "author", "action": "helpful_vote"}
        ]

    def test_same_vote_twice_removes_it(self, fake_db):
        fake_db.queue("community_questions", [{"user_id": "author"}])
        fake_db.queue("community_votes", [{"id": "v1", "vote_type": "down"}])
        result = _service(fake_db).vote("voter", "q1", "question", "down")

        assert result["action"] == "removed"
        assert result["vote_type"] is None
        assert result["score"] == 0
        assert fake_db.ops("community_votes")[1] == ["delete", "eq"]
        assert fake_db.payloads("rpc:update_user_reputation", "rpc") == []

    def test_switching_vote(self, fake_db):
        fake_db.queue("community_questions", [{"user_id": "author"}])
        fake_db.queue("community_votes", [{"id": "v1", "vote_type": "down"}])
        result = _service(fake_db).vote("voter", "q1", "question", "up")
        assert result["action"] == "changed"
        assert fake_db.payloads("community_votes", "update") == [{"vote_type": "up"}]

    def test_vote_on_missing_target(self, fake_db):
        with pytest.raises(NotFoundError):
            _service(fake_db).vote("voter", "nope", "question", "up")


def test_reputation_defaults(fake_db):
    assert _service(fake_db).reputation("user-9")["reputation_score"] == 0
