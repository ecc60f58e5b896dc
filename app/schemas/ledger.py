"""Schemas for skill-credit accounts and ledger entries."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import CamelModel
from app.utils.constants import CreditType


class BalanceResponse(CamelModel):
    account_id: UUID
    balance: int


class LedgerEntryResponse(CamelModel):
    id: UUID
    account_id: UUID
    amount: int
    type: str
    description: str
    reference: Optional[str] = None
    created_at: datetime


class LedgerHistoryResponse(CamelModel):
    entries: List[LedgerEntryResponse]
    total: int
    page: int
    page_size: int


class WalletResponse(CamelModel):
    account_id: UUID
    balance: int
    total_earned: int
    total_spent: int
    recent_entries: List[LedgerEntryResponse] = []


class ReconciliationResponse(CamelModel):
    account_id: UUID
    ledger_balance: int
    cached_balance: int
    drift: int
    in_sync: bool
    repaired: bool = False


class RepairRequest(CamelModel):
    actor_id: str = Field(..., min_length=1, max_length=100)


class LedgerEntryCreate(CamelModel):
    """Manual entry; workflow credit types are rejected."""

    amount: int
    type: CreditType
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = Field(default=None, max_length=200)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v == 0:
            raise ValueError("amount must be non-zero")
        return v
