"""Data models for reviewers, submissions, assignments and their side records."""
# Import all models to ensure relationships work correctly
from .user import User, UserRole
from .submission import Submission, SubmissionStatus
from .assignment import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    MONITORED_STATUSES,
    TERMINAL_STATUSES,
    AssignmentStatus,
    ReviewAssignment,
)
from .ledger import TransactionType, XpTransaction
from .notification import Notification, NotificationType
from .audit import AdminAuditLog

__all__ = [
    # User models
    "User",
    "UserRole",
    # Submission models
    "Submission",
    "SubmissionStatus",
    # Assignment models
    "ReviewAssignment",
    "AssignmentStatus",
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "MONITORED_STATUSES",
    "TERMINAL_STATUSES",
    # Ledger models
    "XpTransaction",
    "TransactionType",
    # Notification models
    "Notification",
    "NotificationType",
    # Audit models
    "AdminAuditLog",
]
