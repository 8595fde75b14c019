"""
Community API Endpoints
Farmer questions and answers, votes, accepted answers and reputation
"""

from functools import lru_cache
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.community import AnswerCreate, QuestionCreate, QuestionList, VoteRequest, VoteResult
from cropgenius.services.community_service import CommunityService

router = APIRouter()


@lru_cache()
def get_community_service() -> CommunityService:
    return CommunityService()


@router.get("/categories")
async def list_categories(service: CommunityService = Depends(get_community_service)):
    return prepare_response(service.categories(), id_fields=["id"])


@router.get("/questions", response_model=QuestionList)
async def list_questions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: Optional[str] = None,
    status: Optional[str] = Query("open"),
    search: Optional[str] = None,
    sort_by: str = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    user_id: Optional[str] = None,
    service: CommunityService = Depends(get_community_service),
):
    result = service.list_questions(
        page=page, limit=limit, category_id=category_id, status=status or None,
        search=search, sort_by=sort_by, sort_order=sort_order, user_id=user_id,
    )
    result["questions"] = prepare_response(result["questions"], id_fields=["id", "user_id", "category_id"])
    return result


@router.post("/questions")
async def create_question(
    body: QuestionCreate,
    current_user: dict = Depends(require_auth),
    service: CommunityService = Depends(get_community_service),
):
    """
    Ask the community a question.
    The question is categorised, tagged and moderated by AI and gets a preliminary answer.
    """
    question = await service.create_question(current_user["id"], body.model_dump())
    return prepare_response(question, id_fields=["id", "user_id", "category_id"])


@router.get("/questions/search")
async def search_questions(
    q: str = Query(..., min_length=2),
    category_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    service: CommunityService = Depends(get_community_service),
):
    return prepare_response(service.search(q, category_id, limit), id_fields=["id", "user_id"])


@router.get("/questions/trending")
async def trending_questions(
    limit: int = Query(10, ge=1, le=50),
    service: CommunityService = Depends(get_community_service),
):
    return prepare_response(service.trending(limit), id_fields=["id", "user_id"])


@router.get("/questions/{question_id}")
async def get_question(question_id: str, service: CommunityService = Depends(get_community_service)):
    return prepare_response(service.get_question(question_id), id_fields=["id", "user_id", "category_id"])


@router.get("/questions/{question_id}/answers")
async def list_answers(question_id: str, service: CommunityService = Depends(get_community_service)):
    return prepare_response(service.list_answers(question_id), id_fields=["id", "user_id", "question_id"])


@router.post("/questions/{question_id}/answers")
async def create_answer(
    question_id: str,
    body: AnswerCreate,
    current_user: dict = Depends(require_auth),
    service: CommunityService = Depends(get_community_service),
):
    answer = service.create_answer(current_user["id"], question_id, body.content, body.images)
    return prepare_response(answer, id_fields=["id", "user_id", "question_id"])


@router.post("/answers/{answer_id}/accept")
async def accept_answer(
    answer_id: str,
    current_user: dict = Depends(require_auth),
    service: CommunityService = Depends(get_community_service),
):
    """Mark the best answer. Only the question's author may do this."""
    return service.accept_answer(current_user["id"], answer_id)


@router.post("/votes", response_model=VoteResult)
async def vote(
    body: VoteRequest,
    current_user: dict = Depends(require_auth),
    service: CommunityService = Depends(get_community_service),
):
    """Up or down vote. Repeating the same vote removes it."""
    return service.vote(current_user["id"], body.target_id, body.target_type, body.vote_type)


@router.get("/reputation/{user_id}")
async def get_reputation(user_id: str, service: CommunityService = Depends(get_community_service)):
    return prepare_response(service.reputation(user_id), id_fields=["user_id"])
