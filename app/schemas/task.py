"""Schemas for tasks and task submissions."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import CamelModel


class TaskCreate(CamelModel):
    internship_id: UUID
    assigned_to: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    credits: int = Field(default=0, ge=0, description="Credits granted when the task is approved")
    actor_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("due_date")
    @classmethod
    def due_date_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Stored due dates are naive UTC; convert offset-aware input."""
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class TaskResponse(CamelModel):
    """Task as seen by callers; ``status`` is the effective (read-time) status."""

    id: UUID
    internship_id: UUID
    assigned_to: UUID
    title: str
    description: Optional[str] = None
    status: str
    stored_status: str
    due_date: Optional[datetime] = None
    credits: int
    submission_count: int = 0
    active_submission_id: Optional[UUID] = None
    created_at: datetime

    @classmethod
    def from_view(cls, view) -> "TaskResponse":
        task = view.task
        return cls(
            id=task.id,
            internship_id=task.internship_id,
            assigned_to=task.assigned_to,
            title=task.title,
            description=task.description,
            status=view.effective_status,
            stored_status=task.status,
            due_date=task.due_date,
            credits=task.credits,
            submission_count=view.submission_count,
            active_submission_id=view.active_submission_id,
            created_at=task.created_at,
        )


class SubmissionCreate(CamelModel):
    submitter_id: UUID
    content: str = Field(..., min_length=1)
    file_url: Optional[str] = Field(default=None, max_length=500)


class SubmissionResponse(CamelModel):
    id: UUID
    task_id: UUID
    submitted_by: UUID
    attempt: int
    status: str
    content: str
    file_url: Optional[str] = None
    feedback: Optional[str] = None
    credits_awarded: int = 0
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
