"""Skill-credit account endpoints (balance, ledger, reconciliation)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.deps import get_db, get_ledger_service
from app.core.security import get_current_service
from app.schemas.ledger import (
    BalanceResponse,
    LedgerEntryCreate,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    ReconciliationResponse,
    RepairRequest,
    WalletResponse,
)
from app.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/{account_id}/balance", response_model=BalanceResponse)
async def get_balance(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """Cached balance of an account."""
    balance = await ledger.balance_of(db, account_id)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.get("/{account_id}/wallet", response_model=WalletResponse)
async def get_wallet(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """Balance, lifetime totals and the ten most recent entries."""
    wallet = await ledger.wallet(db, account_id)
    return WalletResponse.model_validate(wallet)


@router.get("/{account_id}/ledger", response_model=LedgerHistoryResponse)
async def get_ledger_history(
    account_id: UUID,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """Ledger entries, newest first."""
    entries, total = await ledger.history(db, account_id, limit=page_size, offset=(page - 1) * page_size)
    return LedgerHistoryResponse(
        entries=[LedgerEntryResponse.model_validate(entry) for entry in entries],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{account_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_account(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """Recompute the balance from the ledger and report drift. Never writes."""
    report = await ledger.reconcile(db, account_id)
    return ReconciliationResponse.model_validate(report.to_dict())


@router.post("/{account_id}/repair", response_model=ReconciliationResponse)
async def repair_account(
    account_id: UUID,
    repair_in: RepairRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """Overwrite the cached balance with the ledger sum."""
    report = await ledger.repair(db, account_id, actor_id=repair_in.actor_id)
    await db.commit()
    return ReconciliationResponse.model_validate(report.to_dict())


@router.post("/{account_id}/entries", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_ledger_entry(
    account_id: UUID,
    entry_in: LedgerEntryCreate,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger_service),
    service: str = Depends(get_current_service),
):
    """
    Manual DEPOSIT, SPEND or ADJUSTMENT.

    SPEND amounts are negative and may not overdraw the account.
    """
    entry = await ledger.post_entry(
        db,
        account_id,
        amount=entry_in.amount,
        credit_type=entry_in.type,
        description=entry_in.description,
        reference=entry_in.reference,
    )
    await db.commit()
    return LedgerEntryResponse.model_validate(entry)
