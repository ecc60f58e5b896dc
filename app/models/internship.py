"""Internship and project room models."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.utils.constants import InternshipStatus


class Internship(Base):
    """Container for applications and tasks, owned by a company."""

    __tablename__ = "internships"

    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=True, index=True)
    mentor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text)

    # Capacity: maximum number of ACCEPTED applications
    max_interns = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), nullable=False, default=InternshipStatus.ACTIVE.value)

    # Relationships
    company = relationship("Company", back_populates="internships", lazy="raise")
    project_room = relationship("ProjectRoom", back_populates="internship", uselist=False, lazy="raise")

    __table_args__ = (
        CheckConstraint("max_interns >= 0", name="non_negative_capacity"),
    )

    @property
    def accepts_applications(self) -> bool:
        return self.is_active and self.status == InternshipStatus.ACTIVE.value

    def __repr__(self):
        return f"<Internship {self.title} ({self.status}) cap={self.max_interns}>"


class ProjectRoom(Base):
    """
    Collaboration space for an internship.
    Created lazily on the first acceptance; at most one per internship.
    """

    __tablename__ = "project_rooms"

    internship_id = Column(
        UUID(as_uuid=True),
        ForeignKey("internships.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = Column(String(300), nullable=False)
    description = Column(Text)

    # Relationships
    internship = relationship("Internship", back_populates="project_room", lazy="raise")

    def __repr__(self):
        return f"<ProjectRoom {self.name}>"
