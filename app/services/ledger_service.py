"""Skill-credit ledger: append-only entries plus a cached balance per account."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    EntityNotFoundError,
    InsufficientCreditsError,
    InvalidLedgerEntryError,
    ReferenceConflictError,
)
from app.models.ledger_entry import LedgerEntry
from app.models.user import User
from app.utils.constants import WORKFLOW_CREDIT_TYPES, CreditType

logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationReport:
    account_id: UUID
    ledger_balance: int
    cached_balance: int
    repaired: bool = False

    @property
    def drift(self) -> int:
        return self.cached_balance - self.ledger_balance

    @property
    def in_sync(self) -> bool:
        return self.drift == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(drift=self.drift, in_sync=self.in_sync)
        return data


@dataclass
class WalletSummary:
    account_id: UUID
    balance: int
    total_earned: int
    total_spent: int
    recent_entries: List[LedgerEntry] = field(default_factory=list)


class LedgerService:
    """
    Ledger store for skill credits.

    - append() is the only way credits move; it inserts one immutable entry and
      bumps users.skill_credits by the same amount in the caller's transaction
    - balance_of() reads the cached projection
    - reconcile() recomputes from the full history and reports drift; it never
      writes. repair() is the explicit out-of-band fix.
    """

    def __init__(self, notifier=None):
        """
        Args:
            notifier: Optional SlackNotifier used for data-integrity alarms
        """
        self.notifier = notifier

    async def _get_account(self, session: AsyncSession, account_id: UUID, for_update: bool = False) -> User:
        query = select(User).where(User.id == account_id)
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        account = result.scalar_one_or_none()
        if account is None:
            raise EntityNotFoundError(
                f"Account {account_id} not found",
                details={"accountId": str(account_id)},
            )
        return account

    async def find_by_reference(self, session: AsyncSession, reference: str) -> Optional[LedgerEntry]:
        result = await session.execute(
            select(LedgerEntry).where(LedgerEntry.reference == reference)
        )
        return result.scalar_one_or_none()

    async def append(
        self,
        session: AsyncSession,
        account_id: UUID,
        amount: int,
        credit_type: CreditType,
        description: str = "",
        reference: Optional[str] = None,
    ) -> UUID:
        """
        Append one entry and move the cached balance by the same amount.

        A second append with an already-used ``reference`` returns the existing
        entry id and changes nothing. A reference reused for a different
        account, amount or type raises ReferenceConflictError.

        Returns:
            Id of the ledger entry
        """
        if amount == 0:
            raise ValueError("Ledger entries must move a non-zero amount")

        if reference is not None:
            existing = await self.find_by_reference(session, reference)
            if existing is not None:
                if (str(existing.account_id), existing.amount, existing.type) != (
                    str(account_id),
                    amount,
                    CreditType(credit_type).value,
                ):
                    raise ReferenceConflictError(
                        f"Reference {reference} is already used by another entry",
                        details={
                            "reference": reference,
                            "entryId": str(existing.id),
                            "accountId": str(existing.account_id),
                        },
                    )
                logger.info("ledger_append_deduplicated", reference=reference, entry_id=str(existing.id))
                return existing.id

        await self._get_account(session, account_id)

        entry = LedgerEntry(
            account_id=account_id,
            amount=amount,
            type=CreditType(credit_type).value,
            description=description,
            reference=reference,
        )
        session.add(entry)
        await session.flush()

        # Atomic increment; never read-modify-write the cached balance
        await session.execute(
            update(User)
            .where(User.id == account_id)
            .values(skill_credits=User.skill_credits + amount)
        )

        logger.info(
            "ledger_entry_appended",
            entry_id=str(entry.id),
            account_id=str(account_id),
            amount=amount,
            type=entry.type,
            reference=reference,
        )
        return entry.id

    async def balance_of(self, session: AsyncSession, account_id: UUID) -> int:
        """Cached balance (fast path)."""
        result = await session.execute(select(User.skill_credits).where(User.id == account_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise EntityNotFoundError(
                f"Account {account_id} not found",
                details={"accountId": str(account_id)},
            )
        return balance

    async def ledger_sum(self, session: AsyncSession, account_id: UUID) -> int:
        result = await session.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.account_id == account_id
            )
        )
        return int(result.scalar_one())

    async def reconcile(self, session: AsyncSession, account_id: UUID) -> ReconciliationReport:
        """Recompute the balance from the full ledger and compare it to the cache."""
        cached = await self.balance_of(session, account_id)
        report = ReconciliationReport(
            account_id=account_id,
            ledger_balance=await self.ledger_sum(session, account_id),
            cached_balance=cached,
        )
        if not report.in_sync:
            logger.error("ledger_drift_detected", **report.to_dict())
            if self.notifier is not None:
                await self.notifier.send_ledger_drift_alert(report.to_dict())
        return report

    async def repair(self, session: AsyncSession, account_id: UUID, actor_id: str) -> ReconciliationReport:
        """Overwrite the cached balance with the ledger sum (out-of-band repair)."""
        await self._get_account(session, account_id, for_update=True)
        ledger_balance = await self.ledger_sum(session, account_id)
        cached = await self.balance_of(session, account_id)
        report = ReconciliationReport(
            account_id=account_id,
            ledger_balance=ledger_balance,
            cached_balance=cached,
        )
        if not report.in_sync:
            await session.execute(
                update(User).where(User.id == account_id).values(skill_credits=ledger_balance)
            )
            report.repaired = True
            logger.warning(
                "ledger_cache_repaired",
                actor_id=actor_id,
                previous_cached_balance=cached,
                **{k: v for k, v in report.to_dict().items() if k != "cached_balance"},
            )
        return report

    async def reconcile_all(self, session: AsyncSession) -> List[ReconciliationReport]:
        """Reconcile every account; used by the periodic audit."""
        result = await session.execute(select(User.id).order_by(User.created_at))
        return [await self.reconcile(session, account_id) for account_id in result.scalars().all()]

    async def history(
        self,
        session: AsyncSession,
        account_id: UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[LedgerEntry], int]:
        """Entries newest first, plus the total count."""
        await self._get_account(session, account_id)
        total = await session.scalar(
            select(func.count()).select_from(LedgerEntry).where(LedgerEntry.account_id == account_id)
        )
        result = await session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def wallet(self, session: AsyncSession, account_id: UUID) -> WalletSummary:
        account = await self._get_account(session, account_id)
        result = await session.execute(
            select(
                func.coalesce(func.sum(case((LedgerEntry.amount > 0, LedgerEntry.amount), else_=0)), 0),
                func.coalesce(func.sum(case((LedgerEntry.amount < 0, -LedgerEntry.amount), else_=0)), 0),
            ).where(LedgerEntry.account_id == account_id)
        )
        earned, spent = result.one()
        recent, _ = await self.history(session, account_id, limit=10)
        return WalletSummary(
            account_id=account_id,
            balance=account.skill_credits,
            total_earned=int(earned),
            total_spent=int(spent),
            recent_entries=recent,
        )

    async def post_entry(
        self,
        session: AsyncSession,
        account_id: UUID,
        amount: int,
        credit_type: CreditType,
        description: str,
        reference: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Manual DEPOSIT / SPEND / ADJUSTMENT entry.

        SPEND may not take the balance below zero.
        """
        credit_type = CreditType(credit_type)
        check_manual_entry(credit_type, amount)

        await self._get_account(session, account_id, for_update=True)
        if credit_type == CreditType.SPEND:
            balance = await self.balance_of(session, account_id)
            if balance + amount < 0:
                raise InsufficientCreditsError(
                    "Not enough skill credits",
                    details={"balance": balance, "requested": -amount},
                )

        entry_id = await self.append(session, account_id, amount, credit_type, description, reference)
        return await session.get(LedgerEntry, entry_id)


def check_manual_entry(credit_type: CreditType, amount: int) -> None:
    """Sign rules for entries that do not come from the workflow."""
    details = {"type": credit_type.value, "amount": amount}
    if credit_type in WORKFLOW_CREDIT_TYPES:
        raise InvalidLedgerEntryError(f"{credit_type.value} entries are written by the workflow only", details)
    if credit_type == CreditType.DEPOSIT and amount <= 0:
        raise InvalidLedgerEntryError("DEPOSIT amount must be positive", details)
    if credit_type == CreditType.SPEND and amount >= 0:
        raise InvalidLedgerEntryError("SPEND amount must be negative", details)
    if amount == 0:
        raise InvalidLedgerEntryError("ADJUSTMENT amount must be non-zero", details)
