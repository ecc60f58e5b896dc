"""Applies the side effects attached to a validated transition."""

from dataclasses import dataclass, field
from typing import Any, Dict

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings
from app.core.exceptions import EntityNotFoundError, SideEffectFailedError, TransientSideEffectError
from app.models.internship import ProjectRoom
from app.models.task import Task
from app.services.ledger_service import LedgerService
from app.services.transition_validator import SideEffect
from app.utils.constants import SideEffectKind

logger = structlog.get_logger(__name__)


@dataclass
class EffectResult:
    name: str
    created: bool  # False when the effect was already in place
    detail: Dict[str, Any] = field(default_factory=dict)


def is_transient(exc: BaseException) -> bool:
    """
    Errors worth another attempt. Integrity errors are included because every
    effect is create-if-absent: the retry sees the row that won the race.
    """
    if isinstance(exc, (TransientSideEffectError, OperationalError, IntegrityError, TimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class SideEffectExecutor:
    """
    Executes SideEffect descriptors inside the coordinator's transaction.

    Each attempt runs in its own SAVEPOINT so a failed attempt is undone on its
    own and retried without touching the entity state written before it.
    """

    def __init__(self, ledger: LedgerService, settings: Settings):
        self.ledger = ledger
        self.settings = settings

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.SIDE_EFFECT_MAX_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.settings.SIDE_EFFECT_RETRY_MIN_WAIT,
                min=self.settings.SIDE_EFFECT_RETRY_MIN_WAIT,
                max=self.settings.SIDE_EFFECT_RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "side_effect_retry",
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    async def execute(self, session: AsyncSession, effect: SideEffect) -> EffectResult:
        """
        Apply one effect with bounded retries.

        Raises:
            SideEffectFailedError: the effect could not be applied
        """
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    async with session.begin_nested():
                        result = await self.apply(session, effect)
        except Exception as e:
            logger.error(
                "side_effect_failed",
                effect=effect.name,
                attempts=attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SideEffectFailedError(
                f"Side effect {effect.name} failed",
                details={"effect": effect.name, "attempts": attempts, "error": str(e)},
            ) from e

        logger.info("side_effect_applied", effect=effect.name, created=result.created, attempts=attempts)
        return result

    async def apply(self, session: AsyncSession, effect: SideEffect) -> EffectResult:
        """Single attempt, no retry; dispatches on the effect kind."""
        if effect.kind == SideEffectKind.ENSURE_COLLABORATION_SPACE:
            return await self.ensure_collaboration_space(session, effect)
        if effect.kind == SideEffectKind.SET_TASK_STATUS:
            return await self.set_task_status(session, effect)
        if effect.kind == SideEffectKind.GRANT_CREDIT:
            return await self.grant_credit(session, effect)
        raise ValueError(f"Unknown side effect: {effect.kind}")

    async def ensure_collaboration_space(self, session: AsyncSession, effect: SideEffect) -> EffectResult:
        result = await session.execute(
            select(ProjectRoom).where(ProjectRoom.internship_id == effect.internship_id)
        )
        room = result.scalar_one_or_none()
        if room is not None:
            return EffectResult(effect.name, created=False, detail={"projectRoomId": str(room.id)})

        title = effect.description or "Internship"
        room = ProjectRoom(
            internship_id=effect.internship_id,
            name=f"{title} - Project Room",
            description=f"Collaboration space for {title}",
        )
        session.add(room)
        await session.flush()
        return EffectResult(effect.name, created=True, detail={"projectRoomId": str(room.id)})

    async def set_task_status(self, session: AsyncSession, effect: SideEffect) -> EffectResult:
        result = await session.execute(
            select(Task).where(Task.id == effect.task_id).with_for_update()
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise EntityNotFoundError(f"Task {effect.task_id} not found")

        new_status = effect.task_status.value
        changed = task.status != new_status
        task.status = new_status
        await session.flush()
        return EffectResult(effect.name, created=changed, detail={"taskId": str(task.id), "status": new_status})

    async def grant_credit(self, session: AsyncSession, effect: SideEffect) -> EffectResult:
        if effect.reference is not None:
            existing = await self.ledger.find_by_reference(session, effect.reference)
            if existing is not None:
                return EffectResult(effect.name, created=False, detail={"ledgerEntryId": str(existing.id)})

        entry_id = await self.ledger.append(
            session,
            account_id=effect.account_id,
            amount=effect.amount,
            credit_type=effect.credit_type,
            description=effect.description,
            reference=effect.reference,
        )
        return EffectResult(
            effect.name,
            created=True,
            detail={"ledgerEntryId": str(entry_id), "amount": effect.amount},
        )
