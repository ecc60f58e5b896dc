"""
Shared pytest fixtures.

Every test gets its own on-disk SQLite database (aiosqlite). Transactions are
started with BEGIN IMMEDIATE so concurrent writers queue on the database lock
instead of failing, which mirrors the row locks PostgreSQL gives in production.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.pool import NullPool

from app.config import Settings
from app.core.locks import EntityLockRegistry
from app.db.base import Base
from app.db.session import build_engine, build_session_factory
from app.models import (
    Company,
    Internship,
    InternshipApplication,
    LedgerEntry,
    ProjectRoom,
    Task,
    TaskSubmission,
    User,
)
from app.services.ledger_service import LedgerService
from app.services.side_effect_executor import SideEffectExecutor
from app.services.workflow_coordinator import WorkflowCoordinator


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DEBUG=True,
        ACCEPTANCE_BONUS_CREDITS=50,
        SIDE_EFFECT_MAX_ATTEMPTS=3,
        SIDE_EFFECT_RETRY_MIN_WAIT=0,
        SIDE_EFFECT_RETRY_MAX_WAIT=0,
        TRANSITION_LOCK_TIMEOUT=5.0,
        SLACK_ALERTS_ENABLED=False,
    )


class RecordingNotifier:
    """Stands in for SlackNotifier; keeps the alerts it was asked to send."""

    def __init__(self):
        self.drift_alerts = []
        self.side_effect_alerts = []

    async def send_ledger_drift_alert(self, report):
        self.drift_alerts.append(report)
        return True

    async def send_side_effect_failure_alert(self, entity_type, entity_id, details):
        self.side_effect_alerts.append((entity_type, entity_id, details))
        return True


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'workflow.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy (not the driver) emit BEGIN so SAVEPOINTs behave
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def ledger(notifier) -> LedgerService:
    return LedgerService(notifier=notifier)


@pytest.fixture
def executor(ledger, test_settings) -> SideEffectExecutor:
    return SideEffectExecutor(ledger, test_settings)


@pytest.fixture
def coordinator(session_factory, test_settings, ledger, executor, notifier) -> WorkflowCoordinator:
    return WorkflowCoordinator(
        session_factory=session_factory,
        settings=test_settings,
        ledger=ledger,
        executor=executor,
        locks=EntityLockRegistry(),
        notifier=notifier,
    )


# =============================================================================
# DATA FIXTURES
# =============================================================================

class Seeder:
    """Creates rows directly, bypassing the coordinator."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._counter = 0

    async def _add(self, instance):
        async with self.session_factory() as session:
            session.add(instance)
            await session.commit()
        return instance

    async def user(self, role: str = "intern") -> User:
        self._counter += 1
        return await self._add(
            User(email=f"user{self._counter}@example.com", name=f"User {self._counter}", role=role)
        )

    async def internship(self, max_interns: int = 1, title: str = "Backend Internship", **kwargs) -> Internship:
        company = await self._add(Company(name="Acme"))
        return await self._add(
            Internship(company_id=company.id, title=title, max_interns=max_interns, **kwargs)
        )

    async def application(self, internship: Internship, applicant: Optional[User] = None, status: str = "PENDING"):
        applicant = applicant or await self.user()
        return await self._add(
            InternshipApplication(internship_id=internship.id, applicant_id=applicant.id, status=status)
        )

    async def task(
        self,
        internship: Internship,
        assignee: User,
        credits: int = 20,
        status: str = "PENDING",
        due_date: Optional[datetime] = None,
    ) -> Task:
        return await self._add(
            Task(
                internship_id=internship.id,
                assigned_to=assignee.id,
                title="Build the API",
                credits=credits,
                status=status,
                due_date=due_date,
            )
        )

    async def submission(self, task: Task, attempt: int = 1, status: str = "SUBMITTED") -> TaskSubmission:
        return await self._add(
            TaskSubmission(
                task_id=task.id,
                submitted_by=task.assigned_to,
                attempt=attempt,
                status=status,
                content="https://github.com/example/repo",
                submitted_at=datetime.utcnow() + timedelta(seconds=attempt),
            )
        )

    async def get(self, model, entity_id):
        async with self.session_factory() as session:
            return await session.get(model, entity_id)

    async def count(self, model, *criteria) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(model).where(*criteria))
            return len(result.scalars().all())

    async def ledger_entries(self, account_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(LedgerEntry).where(LedgerEntry.account_id == account_id)
            )
            return list(result.scalars().all())

    async def project_rooms(self, internship_id):
        return await self.count(ProjectRoom, ProjectRoom.internship_id == internship_id)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def assert_ledger_consistent(session_factory, ledger):
    """Call with account ids after a scenario; fails on any drift."""

    async def _check(*account_ids):
        async with session_factory() as session:
            for account_id in account_ids:
                report = await ledger.reconcile(session, account_id)
                assert report.in_sync, report.to_dict()

    return _check
