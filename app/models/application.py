"""Internship application model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.utils.constants import ApplicationStatus


class InternshipApplication(Base):
    """A candidate's request to join an internship."""

    __tablename__ = "internship_applications"
    __table_args__ = (
        UniqueConstraint("applicant_id", "internship_id", name="unique_applicant_internship"),
    )

    applicant_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    internship_id = Column(UUID(as_uuid=True), ForeignKey("internships.id"), nullable=False, index=True)

    # Status tracking (PENDING -> ACCEPTED | REJECTED, both terminal)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True)

    cover_letter = Column(String(2000))
    applied_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(100), nullable=True)  # actor id supplied by the caller

    def __repr__(self):
        return f"<InternshipApplication {self.applicant_id} -> {self.internship_id} ({self.status})>"
