"""Company model."""

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class Company(Base):
    """Company that owns internships."""

    __tablename__ = "companies"

    name = Column(String(255), nullable=False, index=True)
    domain = Column(String(255))  # company.com
    description = Column(Text)

    # Relationships
    internships = relationship("Internship", back_populates="company", lazy="raise")

    def __repr__(self):
        return f"<Company {self.name}>"
