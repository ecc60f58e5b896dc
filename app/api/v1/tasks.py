"""Task and submission endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.deps import get_coordinator
from app.core.security import get_current_service
from app.schemas.base import MessageResponse
from app.schemas.task import SubmissionCreate, SubmissionResponse, TaskCreate, TaskResponse
from app.services.workflow_coordinator import WorkflowCoordinator

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """Create a PENDING task inside an internship."""
    task = await coordinator.create_task(
        internship_id=task_in.internship_id,
        assigned_to=task_in.assigned_to,
        title=task_in.title,
        description=task_in.description,
        due_date=task_in.due_date,
        credits=task_in.credits,
        actor_id=task_in.actor_id,
    )
    view = await coordinator.get_task_view(task.id)
    return TaskResponse.from_view(view)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """
    Get a task.

    ``status`` reports OVERDUE for open tasks past their due date; the stored
    status is returned as ``storedStatus``.
    """
    view = await coordinator.get_task_view(task_id)
    return TaskResponse.from_view(view)


@router.post("/{task_id}/submissions", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_work(
    task_id: UUID,
    submission_in: SubmissionCreate,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """Submit work for a task; the new submission supersedes earlier ones."""
    submission = await coordinator.submit_work(
        task_id=task_id,
        submitter_id=submission_in.submitter_id,
        content=submission_in.content,
        file_url=submission_in.file_url,
    )
    return SubmissionResponse.model_validate(submission)


@router.get("/{task_id}/submissions", response_model=List[SubmissionResponse])
async def list_submissions(
    task_id: UUID,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """List a task's submissions, latest attempt first, including review feedback."""
    submissions = await coordinator.list_submissions(task_id)
    return [SubmissionResponse.model_validate(s) for s in submissions]


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: UUID,
    actor_id: str = Query(..., alias="actorId", min_length=1),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """Delete a task. Refused with HAS_DEPENDENTS once any submission exists."""
    await coordinator.delete_task(task_id, actor_id=actor_id)
    return MessageResponse(message="Task deleted successfully")
