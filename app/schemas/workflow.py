"""Schemas for workflow transitions and applications."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base import CamelModel
from app.utils.constants import EntityType


class TransitionRequest(CamelModel):
    """Request a status change for an application, task or submission."""

    entity_type: EntityType
    entity_id: UUID
    requested_state: str = Field(..., min_length=1, max_length=30)
    actor_id: str = Field(..., min_length=1, max_length=100)
    feedback: Optional[str] = Field(default=None, max_length=5000, description="Stored on submission reviews")


class TransitionResponse(CamelModel):
    new_state: str
    side_effects_applied: List[str] = []


class ApplicationCreate(CamelModel):
    internship_id: UUID
    applicant_id: UUID
    cover_letter: Optional[str] = Field(default=None, max_length=2000)


class ApplicationResponse(CamelModel):
    id: UUID
    internship_id: UUID
    applicant_id: UUID
    status: str
    cover_letter: Optional[str] = None
    applied_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
