"""Domain exceptions for the workflow and ledger services.

Every error carries an ``ErrorCode`` so the API layer can hand callers a typed
error body instead of a bare message.
"""

from typing import Any, Dict, Optional

from app.utils.constants import ErrorCode


class WorkflowError(Exception):
    """Base class for all workflow/ledger errors."""

    code: ErrorCode = ErrorCode.INVALID_TRANSITION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorCode": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class TransitionError(WorkflowError):
    """Raised by the validator when a requested transition is not legal."""


class InvalidTransitionError(TransitionError):
    code = ErrorCode.INVALID_TRANSITION


class CapacityExceededError(TransitionError):
    code = ErrorCode.CAPACITY_EXCEEDED


class AlreadyReviewedError(TransitionError):
    code = ErrorCode.ALREADY_REVIEWED


class HasDependentsError(TransitionError):
    code = ErrorCode.HAS_DEPENDENTS


class DuplicateApplicationError(WorkflowError):
    code = ErrorCode.DUPLICATE_APPLICATION


class InsufficientCreditsError(WorkflowError):
    code = ErrorCode.INSUFFICIENT_CREDITS


class InvalidLedgerEntryError(WorkflowError):
    """Manual entry breaks the sign rules for its credit type."""

    code = ErrorCode.INVALID_ENTRY


class ReferenceConflictError(WorkflowError):
    """Reference already used by an entry with a different account, amount or type."""

    code = ErrorCode.REFERENCE_CONFLICT


class EntityNotFoundError(WorkflowError):
    code = ErrorCode.NOT_FOUND


class LockTimeoutError(WorkflowError):
    """The entity lock could not be acquired; no work was done."""

    code = ErrorCode.LOCK_TIMEOUT


class SideEffectFailedError(WorkflowError):
    """Side effect still failing after the retry budget; transition rolled back."""

    code = ErrorCode.SIDE_EFFECT_FAILED


class TransientSideEffectError(Exception):
    """A side effect failed in a way that is worth retrying."""
