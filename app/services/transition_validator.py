"""
Transition validation for applications, tasks and submissions.

Everything in this module is pure: the coordinator loads the facts a rule needs
into a context object, calls ``validate`` and gets back either a decision with
the side effects the transition requires, or a ``TransitionError``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union
from uuid import UUID

from app.core.exceptions import (
    AlreadyReviewedError,
    CapacityExceededError,
    HasDependentsError,
    InvalidTransitionError,
)
from app.utils.constants import (
    NON_TERMINAL_TASK_STATUSES,
    OVERDUE_EXEMPT_TASK_STATUSES,
    REVIEW_STATUSES,
    SIDE_EFFECT_PRIORITY,
    TERMINAL_APPLICATION_STATUSES,
    ApplicationStatus,
    CreditType,
    EntityType,
    SideEffectKind,
    SubmissionStatus,
    TaskStatus,
)


@dataclass(frozen=True)
class SideEffect:
    """Named, idempotent effect a committed transition requires."""

    kind: SideEffectKind
    internship_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    task_status: Optional[TaskStatus] = None
    account_id: Optional[UUID] = None
    amount: int = 0
    credit_type: Optional[CreditType] = None
    description: str = ""
    reference: Optional[str] = None

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def priority(self) -> int:
        return SIDE_EFFECT_PRIORITY[self.kind]


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    side_effects: Tuple[SideEffect, ...] = ()


@dataclass(frozen=True)
class ApplicationContext:
    application_id: UUID
    applicant_id: UUID
    internship_id: UUID
    accepted_count: int
    capacity: int
    bonus_amount: int
    internship_title: str = ""


@dataclass(frozen=True)
class TaskContext:
    task_id: UUID


@dataclass(frozen=True)
class SubmissionContext:
    submission_id: UUID
    task_id: UUID
    submitter_id: UUID
    credit_value: int
    is_latest: bool
    task_status: str = TaskStatus.IN_PROGRESS.value
    task_title: str = ""


TransitionContext = Union[ApplicationContext, TaskContext, SubmissionContext]


def _parse_state(enum_cls, value, entity: EntityType):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidTransitionError(
            f"Unknown {entity.value} status: {value}",
            details={"requestedState": str(value)},
        ) from None


def _illegal(entity: EntityType, current, requested, reason: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Illegal {entity.value} transition: {current.value} -> {requested.value} ({reason})",
        details={"currentState": current.value, "requestedState": requested.value},
    )


def _ordered(*effects: SideEffect) -> Tuple[SideEffect, ...]:
    return tuple(sorted(effects, key=lambda effect: effect.priority))


def validate_application(current: str, requested: str, context: ApplicationContext) -> TransitionDecision:
    entity = EntityType.APPLICATION
    current_state = _parse_state(ApplicationStatus, current, entity)
    requested_state = _parse_state(ApplicationStatus, requested, entity)

    if current_state in TERMINAL_APPLICATION_STATUSES:
        raise _illegal(entity, current_state, requested_state, "application already decided")
    if requested_state not in TERMINAL_APPLICATION_STATUSES:
        raise _illegal(entity, current_state, requested_state, "only ACCEPTED or REJECTED may follow PENDING")

    if requested_state == ApplicationStatus.REJECTED:
        return TransitionDecision(allowed=True)

    if context.accepted_count >= context.capacity:
        raise CapacityExceededError(
            "Internship has no remaining capacity",
            details={
                "internshipId": str(context.internship_id),
                "capacity": context.capacity,
                "acceptedCount": context.accepted_count,
            },
        )

    effects = [
        SideEffect(
            kind=SideEffectKind.ENSURE_COLLABORATION_SPACE,
            internship_id=context.internship_id,
            description=context.internship_title,
        )
    ]
    if context.bonus_amount > 0:
        effects.append(
            SideEffect(
                kind=SideEffectKind.GRANT_CREDIT,
                account_id=context.applicant_id,
                amount=context.bonus_amount,
                credit_type=CreditType.BONUS,
                description="Internship application accepted",
                reference=f"application:{context.application_id}:accepted",
            )
        )
    return TransitionDecision(allowed=True, side_effects=_ordered(*effects))


def validate_task(current: str, requested: str, context: TaskContext) -> TransitionDecision:
    entity = EntityType.TASK
    current_state = _parse_state(TaskStatus, current, entity)
    requested_state = _parse_state(TaskStatus, requested, entity)

    if requested_state == TaskStatus.OVERDUE:
        raise _illegal(entity, current_state, requested_state, "OVERDUE is derived from the due date")

    if requested_state == TaskStatus.PENDING:
        legal = current_state != TaskStatus.PENDING
    elif requested_state == TaskStatus.IN_PROGRESS:
        legal = current_state == TaskStatus.PENDING
    elif requested_state == TaskStatus.COMPLETED:
        legal = current_state == TaskStatus.IN_PROGRESS
    else:  # INACTIVE
        legal = current_state in NON_TERMINAL_TASK_STATUSES

    if not legal:
        raise _illegal(entity, current_state, requested_state, "not a permitted task transition")
    return TransitionDecision(allowed=True)


def validate_submission(current: str, requested: str, context: SubmissionContext) -> TransitionDecision:
    entity = EntityType.SUBMISSION
    current_state = _parse_state(SubmissionStatus, current, entity)
    requested_state = _parse_state(SubmissionStatus, requested, entity)

    if requested_state not in REVIEW_STATUSES:
        raise _illegal(entity, current_state, requested_state, "reviews may only approve, reject or request revision")
    if current_state != SubmissionStatus.SUBMITTED:
        raise AlreadyReviewedError(
            "Submission has already been reviewed",
            details={"submissionId": str(context.submission_id), "currentState": current_state.value},
        )
    if not context.is_latest:
        raise _illegal(entity, current_state, requested_state, "a newer submission exists for this task")

    if requested_state != SubmissionStatus.APPROVED:
        return TransitionDecision(allowed=True)
    if TaskStatus(context.task_status) == TaskStatus.INACTIVE:
        raise InvalidTransitionError(
            "Cannot approve a submission for an INACTIVE task",
            details={
                "currentState": current_state.value,
                "requestedState": requested_state.value,
                "taskId": str(context.task_id),
                "taskStatus": TaskStatus.INACTIVE.value,
            },
        )

    effects = [
        SideEffect(
            kind=SideEffectKind.SET_TASK_STATUS,
            task_id=context.task_id,
            task_status=TaskStatus.COMPLETED,
        )
    ]
    if context.credit_value > 0:
        effects.append(
            SideEffect(
                kind=SideEffectKind.GRANT_CREDIT,
                account_id=context.submitter_id,
                amount=context.credit_value,
                credit_type=CreditType.TASK_REWARD,
                description=f"Task completed: {context.task_title}".strip(),
                reference=f"submission:{context.submission_id}:approved",
            )
        )
    return TransitionDecision(allowed=True, side_effects=_ordered(*effects))


_RULES = {
    EntityType.APPLICATION: validate_application,
    EntityType.TASK: validate_task,
    EntityType.SUBMISSION: validate_submission,
}


def validate(entity_type, current: str, requested: str, context: TransitionContext) -> TransitionDecision:
    """
    Check a requested transition and list the side effects it requires.

    Raises:
        InvalidTransitionError, CapacityExceededError, AlreadyReviewedError
    """
    try:
        entity = EntityType(entity_type)
    except ValueError:
        raise InvalidTransitionError(f"Unknown entity type: {entity_type}") from None
    return _RULES[entity](current, requested, context)


def validate_task_deletion(submission_count: int) -> None:
    """A task may only be deleted while it has no submissions."""
    if submission_count > 0:
        raise HasDependentsError(
            "Cannot delete task with submissions",
            details={"submissionCount": submission_count},
        )


def is_overdue(due_date: Optional[datetime], status: str, now: Optional[datetime] = None) -> bool:
    if due_date is None or TaskStatus(status) in OVERDUE_EXEMPT_TASK_STATUSES:
        return False
    return due_date < (now or datetime.utcnow())


def effective_task_status(due_date: Optional[datetime], status: str, now: Optional[datetime] = None) -> str:
    """Stored status, or OVERDUE when the due date has passed on an open task."""
    if is_overdue(due_date, status, now):
        return TaskStatus.OVERDUE.value
    return TaskStatus(status).value
