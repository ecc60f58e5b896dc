"""Internship application endpoints."""

from fastapi import APIRouter, Depends, status

from app.core.deps import get_coordinator
from app.core.security import get_current_service
from app.schemas.workflow import ApplicationCreate, ApplicationResponse
from app.services.workflow_coordinator import WorkflowCoordinator

router = APIRouter()


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def submit_application(
    application_in: ApplicationCreate,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """Apply to an active internship; one application per applicant and internship."""
    application = await coordinator.submit_application(
        internship_id=application_in.internship_id,
        applicant_id=application_in.applicant_id,
        cover_letter=application_in.cover_letter,
    )
    return ApplicationResponse.model_validate(application)
