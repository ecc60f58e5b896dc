"""Database models."""

# Import all models in dependency order to ensure proper relationship initialization

# Base models (no foreign keys)
from app.models.user import User
from app.models.company import Company

# Models with foreign keys to base models
from app.models.internship import Internship, ProjectRoom
from app.models.ledger_entry import LedgerEntry

# Models with foreign keys to other models
from app.models.application import InternshipApplication
from app.models.task import Task, TaskSubmission

# Export all models
__all__ = [
    "User",
    "Company",
    "Internship",
    "ProjectRoom",
    "LedgerEntry",
    "InternshipApplication",
    "Task",
    "TaskSubmission",
]
