"""Pydantic schemas for daily genius tasks"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict


class GeniusTask(BaseModel):
    id: Optional[str] = None
    user_id: str
    field_id: Optional[str] = None
    title: str
    description: str
    priority: int = 2
    category: str = "general"
    estimated_duration: Optional[int] = None
    task_date: str
    status: str = "pending"
    reasoning: Optional[str] = None


class CompleteTaskRequest(BaseModel):
    completion_data: Dict = {}


class SkipTaskRequest(BaseModel):
    reason: Optional[str] = None


class TaskFeedback(BaseModel):
    usefulness_score: int = Field(..., ge=1, le=5)
    clarity_score: int = Field(..., ge=1, le=5)
    timing_score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class TaskGenerationResult(BaseModel):
    tasks: List[GeniusTask]
    generated: bool
    source: str
