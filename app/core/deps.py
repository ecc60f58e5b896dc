"""Dependency functions for FastAPI routes."""

from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.session import AsyncSessionLocal, get_db as get_db_session
from app.services.ledger_service import LedgerService
from app.services.workflow_coordinator import WorkflowCoordinator
from app.utils.slack_notifier import slack_notifier


# Re-export get_db for convenience
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in get_db_session():
        yield session


@lru_cache
def get_ledger_service() -> LedgerService:
    return LedgerService(notifier=slack_notifier)


@lru_cache
def get_coordinator() -> WorkflowCoordinator:
    """
    Process-wide coordinator.

    A single instance per process so that every request shares one lock
    registry.
    """
    return WorkflowCoordinator(
        session_factory=AsyncSessionLocal,
        settings=settings,
        ledger=get_ledger_service(),
        notifier=slack_notifier,
    )
