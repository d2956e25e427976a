"""Reviewpool - Reviewer Assignment & Deadline Escalation Engine.

Selects eligible, workload-balanced peer reviewers for submissions and
enforces review deadlines with reminders, escalating penalties and
automatic reassignment. Every sweep step is safe to re-run.
"""
__version__ = "0.1.0"

from .core.config.settings import ReviewpoolConfig, get_config, init_config
from .core.storage.database import Database, get_db, init_db
from .core.models import (
    AssignmentStatus,
    ReviewAssignment,
    Submission,
    SubmissionStatus,
    User,
    UserRole,
)
from .core.errors import (
    DuplicateTransactionError,
    InsufficientReviewersError,
    InvalidTransitionError,
    ReviewpoolError,
)
from .core.schemas import (
    AssignmentResult,
    DeadlineMonitorResult,
    DeadlineStatus,
    PoolOptions,
    ReviewerCandidate,
)
from .core.pool import ReviewerPoolService
from .core.deadlines import DeadlineMonitorService
from .core.services import Services, create_services

from . import core

__all__ = [
    # Version
    "__version__",
    # Config
    "ReviewpoolConfig",
    "init_config",
    "get_config",
    # Database
    "Database",
    "init_db",
    "get_db",
    # Models
    "User",
    "UserRole",
    "Submission",
    "SubmissionStatus",
    "ReviewAssignment",
    "AssignmentStatus",
    # Errors
    "ReviewpoolError",
    "InsufficientReviewersError",
    "DuplicateTransactionError",
    "InvalidTransitionError",
    # Schemas
    "PoolOptions",
    "ReviewerCandidate",
    "AssignmentResult",
    "DeadlineMonitorResult",
    "DeadlineStatus",
    # Services
    "ReviewerPoolService",
    "DeadlineMonitorService",
    "Services",
    "create_services",
    # Core module
    "core",
]
