"""Pydantic schemas for the community Q&A"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Literal


class QuestionCreate(BaseModel):
    title: str = Field(..., min_length=5, max_length=200)
    content: str = Field(..., min_length=10)
    category_id: Optional[str] = None
    tags: List[str] = []
    crop_type: Optional[str] = None
    location: Optional[Dict] = None
    images: List[str] = []


class AnswerCreate(BaseModel):
    content: str = Field(..., min_length=2)
    images: List[str] = []


class VoteRequest(BaseModel):
    target_id: str
    target_type: Literal["question", "answer"]
    vote_type: Literal["up", "down"]


class VoteResult(BaseModel):
    action: Literal["added", "removed", "changed"]
    vote_type: Optional[str] = None
    score: int


class QuestionAnalysis(BaseModel):
    category: str = "Crop Management"
    tags: List[str] = []
    preliminary_answer: Optional[str] = None
    confidence: int = 0
    urgency: Literal["low", "medium", "high"] = "low"
    is_appropriate: bool = True
    moderation_reason: Optional[str] = None
    crop_type: Optional[str] = None
    farming_method: Optional[str] = None


class QuestionList(BaseModel):
    questions: List[Dict]
    total: int
    page: int
    limit: int
