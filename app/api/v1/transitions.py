"""Workflow transition endpoint."""

from fastapi import APIRouter, Depends

from app.core.deps import get_coordinator
from app.core.security import get_current_service
from app.schemas.workflow import TransitionRequest, TransitionResponse
from app.services.workflow_coordinator import WorkflowCoordinator

router = APIRouter()


@router.post("", response_model=TransitionResponse)
async def request_transition(
    transition_in: TransitionRequest,
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
    service: str = Depends(get_current_service),
):
    """
    Validate and apply a status change on an application, task or submission.

    Side effects (project room, task completion, credit grants) are applied in
    the same transaction; on any error nothing is written and the typed error
    body is returned.
    """
    outcome = await coordinator.transition(
        transition_in.entity_type,
        transition_in.entity_id,
        transition_in.requested_state,
        transition_in.actor_id,
        feedback=transition_in.feedback,
    )
    return TransitionResponse(
        new_state=outcome.new_state,
        side_effects_applied=outcome.side_effects_applied,
    )
