"""Pydantic schemas for service results and API validation."""
from .preferences import ReviewerPreferences
from .pool import (
    AssignmentResult,
    AssignReviewersRequest,
    EligibilityDecision,
    EnsureAssignmentsResult,
    EnsureStatus,
    PoolOptions,
    ReviewerCandidate,
    ReviewerWorkload,
)
from .deadlines import (
    DeadlineMonitorResult,
    DeadlineState,
    DeadlineStatus,
    BulkReshuffleResult,
    ExtendDeadlineRequest,
    ReshuffleFailureReason,
    ReshuffleRequest,
    ReshuffleResult,
)

__all__ = [
    # Preference schemas
    "ReviewerPreferences",
    # Pool schemas
    "PoolOptions",
    "ReviewerCandidate",
    "AssignmentResult",
    "AssignReviewersRequest",
    "EligibilityDecision",
    "ReviewerWorkload",
    "EnsureStatus",
    "EnsureAssignmentsResult",
    # Deadline schemas
    "DeadlineState",
    "DeadlineStatus",
    "DeadlineMonitorResult",
    "ExtendDeadlineRequest",
    "ReshuffleFailureReason",
    "ReshuffleResult",
    "BulkReshuffleResult",
    "ReshuffleRequest",
]
