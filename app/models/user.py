"""User (credit account) model."""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    """Platform user; also the account that skill credits are booked against."""

    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(150), nullable=True)
    role = Column(String(20), nullable=False, default="intern")
    is_active = Column(Boolean, default=True, nullable=False)

    # Cached balance; the ledger is the source of truth (see LedgerService.reconcile)
    skill_credits = Column(Integer, nullable=False, default=0, server_default="0")

    # Relationships
    ledger_entries = relationship("LedgerEntry", back_populates="account", lazy="raise")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'company_admin', 'mentor', 'intern')", name="valid_role"),
    )

    def __repr__(self):
        return f"<User {self.email} ({self.role}) credits={self.skill_credits}>"
