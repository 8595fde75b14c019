"""
Tasks API Endpoints
Today's genius tasks, generation, completion and feedback
"""

from functools import lru_cache

from fastapi import APIRouter, Depends

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.tasks import CompleteTaskRequest, SkipTaskRequest, TaskFeedback, TaskGenerationResult
from cropgenius.services.tasks_service import TaskService

router = APIRouter()


@lru_cache()
def get_task_service() -> TaskService:
    return TaskService()


@router.get("/today")
async def get_todays_tasks(
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    return prepare_response(service.todays_tasks(current_user["id"]), id_fields=["id", "field_id"])


@router.post("/generate", response_model=TaskGenerationResult)
async def generate_tasks(
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    """Generate today's tasks once. Returns the existing batch when there is one."""
    result = await service.generate(current_user["id"])
    return prepare_response(result)


@router.post("/refresh", response_model=TaskGenerationResult)
async def refresh_tasks(
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    """Expire today's open tasks and generate a new batch"""
    result = await service.refresh(current_user["id"])
    return prepare_response(result)


@router.post("/{task_id}/complete")
async def complete_task(
    task_id: str,
    body: CompleteTaskRequest,
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    return prepare_response(service.complete(task_id, current_user["id"], body.completion_data))


@router.post("/{task_id}/skip")
async def skip_task(
    task_id: str,
    body: SkipTaskRequest,
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    return prepare_response(service.skip(task_id, current_user["id"], body.reason))


@router.post("/{task_id}/feedback")
async def task_feedback(
    task_id: str,
    body: TaskFeedback,
    current_user: dict = Depends(require_auth),
    service: TaskService = Depends(get_task_service),
):
    return prepare_response(service.submit_feedback(task_id, current_user["id"], body.model_dump(exclude_none=True)))
