"""
Community Q&A
Questions, answers, votes and reputation, with a Gemini oracle that categorises,
tags and moderates new questions and drafts a preliminary answer.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from cropgenius.clients.gemini import GeminiClient
from cropgenius.core.errors import (
    CropGeniusError,
    ForbiddenError,
    InvalidFieldDataError,
    NotFoundError,
    ValidationError,
)
from cropgenius.core.supabase import get_supabase

logger = logging.getLogger(__name__)

CATEGORIES = {
    "Crop Management": "Growing, planting, managing crops",
    "Pest Control": "Insects, diseases, crop protection",
    "Soil Health": "Soil testing, fertilization, improvement",
    "Livestock": "Animal husbandry, feeding, management",
    "Weather & Climate": "Weather patterns, climate adaptation",
    "Equipment & Tools": "Farm machinery, tools, technology",
    "Market & Economics": "Pricing, selling, business management",
    "Organic Farming": "Organic methods, certification, sustainability",
}

SORTABLE_COLUMNS = ("created_at", "vote_score", "answer_count", "view_count")
QUESTION_SELECT = "*, category:community_categories(name, icon, color)"
TRENDING_WINDOW_DAYS = 7
# Characters PostgREST reads as filter syntax or wildcards
SEARCH_RESERVED = re.compile(r'[,(){}"\\*%:]')

ANALYSIS_PROMPT = """You are an expert agricultural AI assistant analyzing farming questions for Africa's largest farming community.

Question Analysis:
Title: {title}
Content: {content}
{location}
{crop}

Tasks:
1. Categorize the question into the most appropriate farming category
2. Extract relevant tags for searchability
3. Provide a helpful preliminary answer with specific farming advice
4. Assess content appropriateness and farming relevance
5. Determine urgency level based on farming impact

Available Categories:
{categories}

JSON Response:
{{
  "category": "Most appropriate category from the list above",
  "tags": ["relevant", "farming", "tags"],
  "preliminaryAnswer": "Practical advice for East African smallholders. End with: Community experts will provide more detailed answers soon!",
  "confidenceScore": 85,
  "urgencyLevel": "high|medium|low",
  "isAppropriate": true,
  "moderationReason": "explanation if inappropriate or not farming-related",
  "cropType": "detected crop type if mentioned",
  "farmingMethod": "organic|conventional|mixed if mentioned"
}}

Analyze and respond with JSON only:"""


def neutral_analysis() -> Dict:
    return {
        "category": "Crop Management",
        "tags": [],
        "preliminary_answer": None,
        "confidence": 0,
        "urgency": "low",
        "is_appropriate": True,
        "moderation_reason": None,
        "crop_type": None,
        "farming_method": None,
    }


def parse_analysis(parsed: Dict) -> Dict:
    try:
        confidence = int(float(parsed.get("confidenceScore") or 0))
    except (TypeError, ValueError):
        confidence = 0
    urgency = parsed.get("urgencyLevel")
    tags = parsed.get("tags")
    return {
        "category": parsed.get("category") or "Crop Management",
        "tags": [str(t) for t in tags] if isinstance(tags, list) else [],
        "preliminary_answer": parsed.get("preliminaryAnswer"),
        "confidence": max(0, min(100, confidence)),
        "urgency": urgency if urgency in ("low", "medium", "high") else "medium",
        "is_appropriate": parsed.get("isAppropriate") is not False,
        "moderation_reason": parsed.get("moderationReason"),
        "crop_type": parsed.get("cropType"),
        "farming_method": parsed.get("farmingMethod"),
    }


def display_name_fallback(user_id: Optional[str]) -> str:
    return f"User {(user_id or '')[:8]}"


def search_text(raw: Optional[str]) -> str:
    """A farmer's search box input with filter syntax removed and whitespace collapsed"""
    return " ".join(SEARCH_RESERVED.sub(" ", raw or "").split())


class QuestionOracle:
    def __init__(self, gemini: Optional[GeminiClient] = None):
        self.gemini = gemini or GeminiClient()

    async def analyze(self, title: str, content: str, location: Optional[Dict] = None,
                      crop_type: Optional[str] = None) -> Dict:
        if location:
            region = location.get("region") or location.get("country") or "East Africa"
            location_line = f"Location: {location.get('lat')}, {location.get('lng')} ({region})"
        else:
            location_line = "Location: East Africa"

        prompt = ANALYSIS_PROMPT.format(
            title=title,
            content=content,
            location=location_line,
            crop=f"Crop Type: {crop_type}" if crop_type else "",
            categories="\n".join(f"- {name}: {desc}" for name, desc in CATEGORIES.items()),
        )

        try:
            parsed, _usage = await self.gemini.generate_json(
                prompt, {"temperature": 0.3, "topK": 40, "topP": 0.95, "maxOutputTokens": 1024}
            )
        except CropGeniusError as e:
            logger.warning(f"⚠️ Question analysis unavailable, using neutral analysis: {e.message}")
            return neutral_analysis()

        if not isinstance(parsed, dict):
            return neutral_analysis()
        analysis = parse_analysis(parsed)
        logger.info(f"✅ Question analysed: {analysis['category']} ({analysis['confidence']}% confidence)")
        return analysis


class CommunityService:
    def __init__(self, db=None, oracle: Optional[QuestionOracle] = None, clock=None):
        self._db = db
        self._oracle = oracle
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def db(self):
        if self._db is None:
            self._db = get_supabase()
        return self._db

    @property
    def oracle(self) -> QuestionOracle:
        if self._oracle is None:
            self._oracle = QuestionOracle()
        return self._oracle

    def _reputation(self, user_id: str, action: str):
        try:
            self.db.rpc("update_user_reputation", {"user_id": user_id, "action": action}).execute()
        except Exception as e:
            logger.error(f"❌ Failed to update reputation ({action}) for {user_id}: {e}")

    def _display_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return display_name_fallback(user_id)
        try:
            response = self.db.rpc("get_user_display_name", {"user_uuid": user_id}).execute()
            if response.data:
                return response.data
        except Exception as e:
            logger.warning(f"⚠️ Could not resolve display name for {user_id}: {e}")
        return display_name_fallback(user_id)

    def _enrich(self, rows: List[Dict]) -> List[Dict]:
        names = {}
        for row in rows:
            user_id = row.get("user_id")
            if user_id not in names:
                names[user_id] = self._display_name(user_id)
        return [{**row, "user_display_name": names[row.get("user_id")]} for row in rows]

    # ---- Questions ----

    async def create_question(self, user_id: str, data: Dict) -> Dict:
        analysis = await self.oracle.analyze(
            data["title"], data["content"], data.get("location"), data.get("crop_type")
        )
        if not analysis["is_appropriate"]:
            raise InvalidFieldDataError(
                analysis.get("moderation_reason") or "Question is not appropriate for the farming community"
            )

        category_id = data.get("category_id")
        if not category_id:
            categories = self.categories()
            wanted = analysis["category"].lower()
            match = next((c for c in categories if wanted in (c.get("name") or "").lower()), None)
            category_id = (match or (categories[0] if categories else {})).get("id")

        tags = list(dict.fromkeys(list(data.get("tags") or []) + analysis["tags"]))
        row = {
            "title": data["title"],
            "content": data["content"],
            "images": data.get("images") or [],
            "location": data.get("location"),
            "user_id": user_id,
            "category_id": category_id,
            "tags": tags,
            "ai_preliminary_answer": analysis["preliminary_answer"],
            "ai_confidence_score": analysis["confidence"] / 100,
            "crop_type": analysis["crop_type"] or data.get("crop_type"),
            "farming_method": analysis["farming_method"] or data.get("farming_method"),
        }

        response = self.db.table("community_questions").insert(row).execute()
        if not response.data:
            raise CropGeniusError("Failed to create question")
        question = response.data[0]

        self._reputation(user_id, "question_asked")
        logger.info(f"❓ Question created by {user_id}: {question.get('id')}")
        return question

    def list_questions(self, page: int = 1, limit: int = 20, category_id: Optional[str] = None,
                       status: Optional[str] = "open", search: Optional[str] = None,
                       sort_by: str = "created_at", sort_order: str = "desc",
                       user_id: Optional[str] = None) -> Dict:
        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort by {sort_by}")
        page = max(1, page)
        limit = max(1, min(100, limit))

        query = self.db.table("community_questions").select(QUESTION_SELECT, count="exact")
        if category_id:
            query = query.eq("category_id", category_id)
        if status:
            query = query.eq("status", status)
        if user_id:
            query = query.eq("user_id", user_id)
        search = search_text(search)
        if search:
            query = query.or_(f"title.ilike.%{search}%,content.ilike.%{search}%,tags.cs.{{{search}}}")

        start = (page - 1) * limit
        response = query\
            .order(sort_by, desc=sort_order != "asc")\
            .range(start, start + limit - 1)\
            .execute()

        return {
            "questions": self._enrich(response.data or []),
            "total": response.count or 0,
            "page": page,
            "limit": limit,
        }

    def get_question(self, question_id: str) -> Dict:
        response = self.db.table("community_questions")\
            .select(QUESTION_SELECT)\
            .eq("id", question_id)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Question not found")
        question = response.data[0]

        views = (question.get("view_count") or 0) + 1
        self.db.table("community_questions").update({"view_count": views}).eq("id", question_id).execute()
        question["view_count"] = views
        return self._enrich([question])[0]

    def search(self, term: str, category_id: Optional[str] = None, limit: int = 20) -> List[Dict]:
        term = search_text(term)
        if not term:
            return []
        query = self.db.table("community_questions")\
            .select(QUESTION_SELECT)\
            .text_search("title", term, options={"type": "websearch"})
        if category_id:
            query = query.eq("category_id", category_id)
        response = query.limit(limit).execute()
        return self._enrich(response.data or [])

    def trending(self, limit: int = 10) -> List[Dict]:
        since = (self._now() - timedelta(days=TRENDING_WINDOW_DAYS)).isoformat()
        response = self.db.table("community_questions")\
            .select(QUESTION_SELECT)\
            .eq("status", "open")\
            .gte("created_at", since)\
            .order("vote_score", desc=True)\
            .order("view_count", desc=True)\
            .limit(limit)\
            .execute()
        return self._enrich(response.data or [])

    # ---- Answers ----

    def create_answer(self, user_id: str, question_id: str, content: str,
                      images: Optional[List[str]] = None) -> Dict:
        exists = self.db.table("community_questions").select("id").eq("id", question_id).limit(1).execute()
        if not exists.data:
            raise NotFoundError("Question not found")

        response = self.db.table("community_answers").insert({
            "question_id": question_id,
            "content": content,
            "images": images or [],
            "user_id": user_id,
        }).execute()
        if not response.data:
            raise CropGeniusError("Failed to create answer")

        self._reputation(user_id, "answer_given")
        return response.data[0]

    def list_answers(self, question_id: str) -> List[Dict]:
        response = self.db.table("community_answers")\
            .select("*")\
            .eq("question_id", question_id)\
            .order("vote_score", desc=True)\
            .order("created_at")\
            .execute()
        return self._enrich(response.data or [])

    def accept_answer(self, user_id: str, answer_id: str) -> Dict:
        response = self.db.table("community_answers")\
            .select("*, question:community_questions(user_id)")\
            .eq("id", answer_id)\
            .limit(1)\
            .execute()
        if not response.data:
            raise NotFoundError("Answer not found")
        answer = response.data[0]

        if (answer.get("question") or {}).get("user_id") != user_id:
            raise ForbiddenError("Only the question owner can accept an answer")

        question_id = answer["question_id"]
        self.db.table("community_answers").update({"is_accepted": False}).eq("question_id", question_id).execute()
        self.db.table("community_answers").update({"is_accepted": True}).eq("id", answer_id).execute()
        self.db.table("community_questions").update({"status": "answered"}).eq("id", question_id).execute()

        self._reputation(answer["user_id"], "best_answer")
        logger.info(f"🏆 Answer {answer_id} accepted for question {question_id}")
        return {"answer_id": answer_id, "question_id": question_id, "accepted": True}

    # ---- Votes ----

    def vote(self, user_id: str, target_id: str, target_type: str, vote_type: str) -> Dict:
        table = "community_questions" if target_type == "question" else "community_answers"

        target = self.db.table(table).select("user_id").eq("id", target_id).limit(1).execute()
        if not target.data:
            raise NotFoundError(f"{target_type.capitalize()} not found")

        existing = self.db.table("community_votes")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("target_id", target_id)\
            .eq("target_type", target_type)\
            .limit(1)\
            .execute()
        current = existing.data[0] if existing.data else None

        if current and current.get("vote_type") == vote_type:
            self.db.table("community_votes").delete().eq("id", current["id"]).execute()
            action, recorded = "removed", None
        elif current:
            self.db.table("community_votes").update({"vote_type": vote_type}).eq("id", current["id"]).execute()
            action, recorded = "changed", vote_type
        else:
            self.db.table("community_votes").insert({
                "user_id": user_id,
                "target_id": target_id,
                "target_type": target_type,
                "vote_type": vote_type,
            }).execute()
            action, recorded = "added", vote_type

        self.db.rpc("update_vote_score", {"target_id": target_id, "target_type": target_type}).execute()

        if recorded == "up":
            self._reputation(target.data[0]["user_id"], "helpful_vote")

        updated = self.db.table(table).select("vote_score").eq("id", target_id).limit(1).execute()
        score = (updated.data[0].get("vote_score") if updated.data else 0) or 0
        return {"action": action, "vote_type": recorded, "score": int(score)}

    # ---- Reads ----

    def categories(self) -> List[Dict]:
        response = self.db.table("community_categories").select("*").order("name").execute()
        return response.data or []

    def reputation(self, user_id: str) -> Dict:
        response = self.db.table("user_reputation").select("*").eq("user_id", user_id).limit(1).execute()
        if not response.data:
            return {"user_id": user_id, "reputation_score": 0, "questions_asked": 0,
                    "answers_given": 0, "best_answers": 0, "helpful_votes": 0}
        return response.data[0]
