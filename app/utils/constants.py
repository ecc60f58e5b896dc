"""Common constants and status enumerations."""

from enum import Enum


class EntityType(str, Enum):
    """Entities whose status is owned by the workflow coordinator."""

    APPLICATION = "application"
    TASK = "task"
    SUBMISSION = "submission"


class ApplicationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class InternshipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    COMPLETED = "COMPLETED"


class TaskStatus(str, Enum):
    """Task statuses. OVERDUE is derived at read time and never stored."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    INACTIVE = "INACTIVE"
    OVERDUE = "OVERDUE"


class SubmissionStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"


class CreditType(str, Enum):
    """Ledger entry types."""

    BONUS = "BONUS"
    TASK_REWARD = "TASK_REWARD"
    DEPOSIT = "DEPOSIT"
    SPEND = "SPEND"
    ADJUSTMENT = "ADJUSTMENT"


class SideEffectKind(str, Enum):
    ENSURE_COLLABORATION_SPACE = "ensure-collaboration-space"
    SET_TASK_STATUS = "set-task-status"
    GRANT_CREDIT = "grant-credit"


class ErrorCode(str, Enum):
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_REVIEWED = "ALREADY_REVIEWED"
    HAS_DEPENDENTS = "HAS_DEPENDENTS"
    SIDE_EFFECT_FAILED = "SIDE_EFFECT_FAILED"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_APPLICATION = "DUPLICATE_APPLICATION"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    INVALID_ENTRY = "INVALID_ENTRY"
    REFERENCE_CONFLICT = "REFERENCE_CONFLICT"


# Terminal application states (no further transitions)
TERMINAL_APPLICATION_STATUSES = frozenset(
    {ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED}
)

# Task states from which a soft-disable is allowed
NON_TERMINAL_TASK_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})

# Task states that are never reported as overdue
OVERDUE_EXEMPT_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.INACTIVE})

# Review outcomes for a submission
REVIEW_STATUSES = frozenset(
    {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED, SubmissionStatus.NEEDS_REVISION}
)

# Ledger types that only the workflow may write
WORKFLOW_CREDIT_TYPES = frozenset({CreditType.BONUS, CreditType.TASK_REWARD})

# Execution order of side effects within one transition
SIDE_EFFECT_PRIORITY = {
    SideEffectKind.ENSURE_COLLABORATION_SPACE: 0,
    SideEffectKind.SET_TASK_STATUS: 1,
    SideEffectKind.GRANT_CREDIT: 2,
}
