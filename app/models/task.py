"""Task and task submission models."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.utils.constants import SubmissionStatus, TaskStatus


class Task(Base):
    """
    Unit of work inside an internship, assigned to one account.
    The stored status never holds OVERDUE; see transition_validator.effective_task_status.
    """

    __tablename__ = "tasks"

    internship_id = Column(UUID(as_uuid=True), ForeignKey("internships.id"), nullable=False, index=True)
    assigned_to = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    due_date = Column(DateTime, nullable=True)
    credits = Column(Integer, nullable=False, default=0)  # credit value granted on approval

    __table_args__ = (
        CheckConstraint("credits >= 0", name="non_negative_credits"),
        CheckConstraint("status <> 'OVERDUE'", name="overdue_not_stored"),
        Index("idx_tasks_assignee_status", "assigned_to", "status"),
    )

    def __repr__(self):
        return f"<Task {self.title} ({self.status})>"


class TaskSubmission(Base):
    """An assignee's attempt to complete a task."""

    __tablename__ = "task_submissions"

    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id"), nullable=False)
    submitted_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # 1, 2, 3... per task; the highest attempt is the active submission
    attempt = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=SubmissionStatus.SUBMITTED.value)
    content = Column(Text, nullable=False)
    file_url = Column(String(500), nullable=True)

    # Review
    feedback = Column(Text, nullable=True)
    credits_awarded = Column(Integer, nullable=False, default=0)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("task_id", "attempt", name="unique_task_attempt"),
        Index("idx_task_submissions_task", "task_id"),
    )

    def __repr__(self):
        return f"<TaskSubmission task={self.task_id} ({self.status})>"
