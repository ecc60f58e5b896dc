"""
Workflow coordinator.

The only component that writes status fields of applications, tasks and
submissions. Every transition runs as:

    lock entity -> load -> validate -> persist state -> side effects -> commit

inside one database transaction, so a failed side effect rolls the state
write back with it.
"""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Union
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.core.exceptions import (
    DuplicateApplicationError,
    EntityNotFoundError,
    InvalidTransitionError,
    SideEffectFailedError,
)
from app.core.locks import EntityLockRegistry, entity_key
from app.models.application import InternshipApplication
from app.models.internship import Internship
from app.models.task import Task, TaskSubmission
from app.models.user import User
from app.services import transition_validator
from app.services.ledger_service import LedgerService
from app.services.side_effect_executor import SideEffectExecutor
from app.services.transition_validator import (
    ApplicationContext,
    SubmissionContext,
    TaskContext,
    TransitionDecision,
)
from app.utils.constants import (
    ApplicationStatus,
    EntityType,
    SubmissionStatus,
    TaskStatus,
)

logger = structlog.get_logger(__name__)


@dataclass
class TransitionOutcome:
    """Result of a committed transition; also the event handed to listeners."""

    entity_type: EntityType
    entity_id: UUID
    previous_state: str
    new_state: str
    actor_id: str
    side_effects_applied: List[str] = field(default_factory=list)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_response(self) -> dict:
        return {"newState": self.new_state, "sideEffectsApplied": list(self.side_effects_applied)}


@dataclass
class TaskView:
    task: Task
    effective_status: str
    submission_count: int
    active_submission_id: Optional[UUID] = None


TransitionListener = Callable[[TransitionOutcome], Union[None, Awaitable[None]]]


def _as_uuid(value: Any, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise EntityNotFoundError(f"{label} {value} not found", details={"id": str(value)}) from None


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class WorkflowCoordinator:
    """Serializes and applies transitions per entity."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        ledger: Optional[LedgerService] = None,
        executor: Optional[SideEffectExecutor] = None,
        locks: Optional[EntityLockRegistry] = None,
        notifier=None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.ledger = ledger or LedgerService(notifier=notifier)
        self.executor = executor or SideEffectExecutor(self.ledger, settings)
        self.locks = locks or EntityLockRegistry()
        self.notifier = notifier
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback for committed transitions (notifications, UI events)."""
        self._listeners.append(listener)

    # ==================== Transitions ====================

    async def transition(
        self,
        entity_type: Union[EntityType, str],
        entity_id: Union[UUID, str],
        requested_state: str,
        actor_id: str,
        feedback: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Validate and apply a status change with its side effects.
        ``feedback`` is stored with submission reviews.

        Raises:
            WorkflowError subclasses; nothing has been written when one is raised
        """
        try:
            entity = EntityType(entity_type)
        except ValueError:
            raise InvalidTransitionError(f"Unknown entity type: {entity_type}") from None
        entity_id = _as_uuid(entity_id, entity.value)
        requested_state = str(getattr(requested_state, "value", requested_state))

        keys = await self._lock_keys(entity, entity_id, requested_state)
        try:
            async with self.locks.acquire(*keys, timeout=self.settings.TRANSITION_LOCK_TIMEOUT):
                async with self.session_factory() as session:
                    try:
                        outcome = await self._apply(session, entity, entity_id, requested_state, actor_id, feedback)
                        await session.commit()
                    except BaseException:
                        await session.rollback()
                        raise
        except SideEffectFailedError as e:
            logger.error(
                "transition_rolled_back",
                entity_type=entity.value,
                entity_id=str(entity_id),
                requested_state=requested_state,
                **e.details,
            )
            # Lock already released; the Slack client call blocks
            if self.notifier is not None:
                await self.notifier.send_side_effect_failure_alert(entity.value, str(entity_id), e.details)
            raise

        logger.info(
            "transition_committed",
            entity_type=entity.value,
            entity_id=str(entity_id),
            previous_state=outcome.previous_state,
            new_state=outcome.new_state,
            actor_id=actor_id,
            side_effects=outcome.side_effects_applied,
        )
        await self._publish(outcome)
        return outcome

    async def _lock_keys(self, entity: EntityType, entity_id: UUID, requested_state: str) -> list:
        """
        Entity key plus any shared parent the transition reads or writes.
        Parent ids never change, so they are read before locking.
        """
        keys = [entity_key(entity, entity_id)]
        if entity == EntityType.TASK:
            return keys

        async with self.session_factory() as session:
            if entity == EntityType.APPLICATION:
                application = await self._load(session, InternshipApplication, entity_id, "Application")
                if requested_state == ApplicationStatus.ACCEPTED.value:
                    # Capacity is shared by every application of the internship
                    keys.append(entity_key("internship", application.internship_id))
            else:
                submission = await self._load(session, TaskSubmission, entity_id, "Submission")
                keys.append(entity_key(EntityType.TASK, submission.task_id))
        return keys

    async def _apply(
        self,
        session: AsyncSession,
        entity: EntityType,
        entity_id: UUID,
        requested_state: str,
        actor_id: str,
        feedback: Optional[str] = None,
    ) -> TransitionOutcome:
        if entity == EntityType.APPLICATION:
            return await self._transition_application(session, entity_id, requested_state, actor_id)
        if entity == EntityType.TASK:
            return await self._transition_task(session, entity_id, requested_state, actor_id)
        return await self._transition_submission(session, entity_id, requested_state, actor_id, feedback)

    async def _transition_application(
        self, session: AsyncSession, application_id: UUID, requested_state: str, actor_id: str
    ) -> TransitionOutcome:
        application = await self._load(session, InternshipApplication, application_id, "Application", for_update=True)
        internship = await self._load(
            session,
            Internship,
            application.internship_id,
            "Internship",
            for_update=requested_state == ApplicationStatus.ACCEPTED.value,
        )
        accepted_count = await session.scalar(
            select(func.count())
            .select_from(InternshipApplication)
            .where(
                InternshipApplication.internship_id == internship.id,
                InternshipApplication.status == ApplicationStatus.ACCEPTED.value,
            )
        )
        context = ApplicationContext(
            application_id=application.id,
            applicant_id=application.applicant_id,
            internship_id=internship.id,
            accepted_count=accepted_count or 0,
            capacity=internship.max_interns,
            bonus_amount=self.settings.ACCEPTANCE_BONUS_CREDITS,
            internship_title=internship.title,
        )
        decision = transition_validator.validate(EntityType.APPLICATION, application.status, requested_state, context)

        previous = application.status
        application.status = ApplicationStatus(requested_state).value
        application.reviewed_at = datetime.utcnow()
        application.reviewed_by = actor_id
        await session.flush()

        applied = await self._run_side_effects(session, decision)
        return TransitionOutcome(EntityType.APPLICATION, application.id, previous, application.status, actor_id, applied)

    async def _transition_task(
        self, session: AsyncSession, task_id: UUID, requested_state: str, actor_id: str
    ) -> TransitionOutcome:
        task = await self._load(session, Task, task_id, "Task", for_update=True)
        decision = transition_validator.validate(EntityType.TASK, task.status, requested_state, TaskContext(task.id))

        previous = task.status
        task.status = TaskStatus(requested_state).value
        await session.flush()

        applied = await self._run_side_effects(session, decision)
        return TransitionOutcome(EntityType.TASK, task.id, previous, task.status, actor_id, applied)

    async def _transition_submission(
        self,
        session: AsyncSession,
        submission_id: UUID,
        requested_state: str,
        actor_id: str,
        feedback: Optional[str] = None,
    ) -> TransitionOutcome:
        submission = await self._load(session, TaskSubmission, submission_id, "Submission", for_update=True)
        task = await self._load(session, Task, submission.task_id, "Task", for_update=True)
        latest_attempt = await session.scalar(
            select(func.max(TaskSubmission.attempt)).where(TaskSubmission.task_id == task.id)
        )
        context = SubmissionContext(
            submission_id=submission.id,
            task_id=task.id,
            submitter_id=submission.submitted_by,
            credit_value=task.credits,
            is_latest=submission.attempt == latest_attempt,
            task_status=task.status,
            task_title=task.title,
        )
        decision = transition_validator.validate(EntityType.SUBMISSION, submission.status, requested_state, context)

        previous = submission.status
        submission.status = SubmissionStatus(requested_state).value
        submission.reviewed_at = datetime.utcnow()
        submission.reviewed_by = actor_id
        if feedback is not None:
            submission.feedback = feedback
        if submission.status == SubmissionStatus.APPROVED.value:
            submission.credits_awarded = task.credits
        await session.flush()

        applied = await self._run_side_effects(session, decision)
        return TransitionOutcome(EntityType.SUBMISSION, submission.id, previous, submission.status, actor_id, applied)

    async def _run_side_effects(self, session: AsyncSession, decision: TransitionDecision) -> List[str]:
        applied = []
        for effect in sorted(decision.side_effects, key=lambda e: e.priority):
            await self.executor.execute(session, effect)
            applied.append(effect.name)
        return applied

    async def _publish(self, outcome: TransitionOutcome) -> None:
        """Notify listeners; the transition is already committed, so failures are only logged."""
        for listener in self._listeners:
            try:
                result = listener(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "transition_listener_failed",
                    entity_type=outcome.entity_type.value,
                    entity_id=str(outcome.entity_id),
                )

    @staticmethod
    async def _load(session: AsyncSession, model, entity_id: UUID, label: str, for_update: bool = False):
        query = select(model).where(model.id == entity_id)
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        instance = result.scalar_one_or_none()
        if instance is None:
            raise EntityNotFoundError(f"{label} {entity_id} not found", details={"id": str(entity_id)})
        return instance

    # ==================== Entity creation & deletion ====================

    async def submit_application(
        self,
        internship_id: Union[UUID, str],
        applicant_id: Union[UUID, str],
        cover_letter: Optional[str] = None,
    ) -> InternshipApplication:
        """Create a PENDING application for an active internship."""
        internship_id = _as_uuid(internship_id, "Internship")
        applicant_id = _as_uuid(applicant_id, "Account")

        async with self.locks.acquire(entity_key("internship", internship_id), timeout=self.settings.TRANSITION_LOCK_TIMEOUT):
            async with self.session_factory() as session:
                async with session.begin():
                    internship = await self._load(session, Internship, internship_id, "Internship")
                    if not internship.accepts_applications:
                        raise InvalidTransitionError(
                            "Internship is not accepting applications",
                            details={"internshipId": str(internship_id), "status": internship.status},
                        )
                    await self._load(session, User, applicant_id, "Account")

                    existing = await session.scalar(
                        select(InternshipApplication.id).where(
                            InternshipApplication.internship_id == internship_id,
                            InternshipApplication.applicant_id == applicant_id,
                        )
                    )
                    if existing is not None:
                        raise DuplicateApplicationError(
                            "You have already applied to this internship",
                            details={"applicationId": str(existing)},
                        )

                    application = InternshipApplication(
                        internship_id=internship_id,
                        applicant_id=applicant_id,
                        status=ApplicationStatus.PENDING.value,
                        cover_letter=cover_letter,
                    )
                    session.add(application)
                    await session.flush()

        logger.info("application_submitted", application_id=str(application.id), internship_id=str(internship_id))
        return application

    async def create_task(
        self,
        internship_id: Union[UUID, str],
        assigned_to: Union[UUID, str],
        title: str,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
        credits: int = 0,
        actor_id: Optional[str] = None,
    ) -> Task:
        if credits < 0:
            raise ValueError("Task credit value cannot be negative")
        internship_id = _as_uuid(internship_id, "Internship")
        assigned_to = _as_uuid(assigned_to, "Account")

        async with self.session_factory() as session:
            async with session.begin():
                await self._load(session, Internship, internship_id, "Internship")
                await self._load(session, User, assigned_to, "Account")
                task = Task(
                    internship_id=internship_id,
                    assigned_to=assigned_to,
                    title=title,
                    description=description,
                    due_date=_as_naive_utc(due_date),
                    credits=credits,
                    status=TaskStatus.PENDING.value,
                )
                session.add(task)
                await session.flush()

        logger.info("task_created", task_id=str(task.id), internship_id=str(internship_id), actor_id=actor_id)
        return task

    async def submit_work(
        self,
        task_id: Union[UUID, str],
        submitter_id: Union[UUID, str],
        content: str,
        file_url: Optional[str] = None,
    ) -> TaskSubmission:
        """
        Record a new submission; it becomes the task's active submission.
        A PENDING task moves to IN_PROGRESS.
        """
        task_id = _as_uuid(task_id, "Task")
        submitter_id = _as_uuid(submitter_id, "Account")

        async with self.locks.acquire(entity_key(EntityType.TASK, task_id), timeout=self.settings.TRANSITION_LOCK_TIMEOUT):
            async with self.session_factory() as session:
                async with session.begin():
                    task = await self._load(session, Task, task_id, "Task", for_update=True)
                    if task.assigned_to != submitter_id:
                        raise InvalidTransitionError(
                            "Only the assignee can submit work for this task",
                            details={"taskId": str(task_id)},
                        )
                    if task.status in (TaskStatus.COMPLETED.value, TaskStatus.INACTIVE.value):
                        raise InvalidTransitionError(
                            f"Cannot submit to a {task.status} task",
                            details={"taskId": str(task_id), "status": task.status},
                        )

                    latest_attempt = await session.scalar(
                        select(func.max(TaskSubmission.attempt)).where(TaskSubmission.task_id == task_id)
                    )
                    submission = TaskSubmission(
                        task_id=task_id,
                        submitted_by=submitter_id,
                        attempt=(latest_attempt or 0) + 1,
                        status=SubmissionStatus.SUBMITTED.value,
                        content=content,
                        file_url=file_url,
                    )
                    session.add(submission)

                    if task.status == TaskStatus.PENDING.value:
                        transition_validator.validate(
                            EntityType.TASK, task.status, TaskStatus.IN_PROGRESS.value, TaskContext(task.id)
                        )
                        task.status = TaskStatus.IN_PROGRESS.value
                    await session.flush()

        logger.info(
            "work_submitted",
            submission_id=str(submission.id),
            task_id=str(task_id),
            attempt=submission.attempt,
        )
        return submission

    async def delete_task(self, task_id: Union[UUID, str], actor_id: str) -> None:
        """Delete a task that has no submissions."""
        task_id = _as_uuid(task_id, "Task")

        async with self.locks.acquire(entity_key(EntityType.TASK, task_id), timeout=self.settings.TRANSITION_LOCK_TIMEOUT):
            async with self.session_factory() as session:
                async with session.begin():
                    task = await self._load(session, Task, task_id, "Task", for_update=True)
                    submission_count = await session.scalar(
                        select(func.count()).select_from(TaskSubmission).where(TaskSubmission.task_id == task_id)
                    )
                    transition_validator.validate_task_deletion(submission_count or 0)
                    await session.delete(task)

        logger.info("task_deleted", task_id=str(task_id), actor_id=actor_id)

    async def get_task_view(self, task_id: Union[UUID, str], now: Optional[datetime] = None) -> TaskView:
        """Task with its read-time status (OVERDUE when past due and still open)."""
        task_id = _as_uuid(task_id, "Task")
        async with self.session_factory() as session:
            task = await self._load(session, Task, task_id, "Task")
            result = await session.execute(
                select(func.count(), func.max(TaskSubmission.attempt)).where(TaskSubmission.task_id == task_id)
            )
            submission_count, latest_attempt = result.one()
            active_submission_id = None
            if latest_attempt is not None:
                active_submission_id = await session.scalar(
                    select(TaskSubmission.id).where(
                        TaskSubmission.task_id == task_id,
                        TaskSubmission.attempt == latest_attempt,
                    )
                )
        return TaskView(
            task=task,
            effective_status=transition_validator.effective_task_status(task.due_date, task.status, now),
            submission_count=submission_count or 0,
            active_submission_id=active_submission_id,
        )

    async def list_submissions(self, task_id: Union[UUID, str]) -> List[TaskSubmission]:
        """Submissions of a task, latest attempt first, with review feedback."""
        task_id = _as_uuid(task_id, "Task")
        async with self.session_factory() as session:
            await self._load(session, Task, task_id, "Task")
            result = await session.execute(
                select(TaskSubmission)
                .where(TaskSubmission.task_id == task_id)
                .order_by(TaskSubmission.attempt.desc())
            )
            return list(result.scalars().all())
