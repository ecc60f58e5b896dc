"""
Ledger entry model.

Immutable record of a credit-affecting event. Rows are only ever inserted;
corrections are made by appending an offsetting ADJUSTMENT entry.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class LedgerEntry(Base):
    """Signed credit movement for one account."""

    __tablename__ = "ledger_entries"

    account_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)  # signed
    type = Column(String(20), nullable=False)  # BONUS, TASK_REWARD, DEPOSIT, SPEND, ADJUSTMENT
    description = Column(String(500), nullable=False, default="")

    # Idempotency key, e.g. "submission:<id>:approved"; NULL for manual entries
    reference = Column(String(200), nullable=True, unique=True)

    # Relationships
    account = relationship("User", back_populates="ledger_entries", lazy="raise")

    __table_args__ = (
        CheckConstraint("amount <> 0", name="non_zero_amount"),
        Index("idx_ledger_entries_account_created", "account_id", "created_at"),
    )

    def __repr__(self):
        return f"<LedgerEntry(account_id={self.account_id}, type={self.type}, amount={self.amount})>"
