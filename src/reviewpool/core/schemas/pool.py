"""Reviewer pool schemas - options, candidates and assignment results."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PoolOptions(BaseModel):
    """Per-call overrides for reviewer selection. Unset fields use the config."""
    max_active_assignments: Optional[int] = Field(
        None, ge=1, description="Cap on a reviewer's PENDING/IN_PROGRESS assignments"
    )
    exclude_user_ids: list[int] = Field(default_factory=list, description="Users never to pick")
    task_types: list[str] = Field(default_factory=list, description="Required task types")
    minimum_reviewers: Optional[int] = Field(None, ge=1, description="Reviewers to assign")
    allow_partial_assignment: Optional[bool] = Field(
        None, description="Assign fewer than requested instead of failing"
    )


class ReviewerCandidate(BaseModel):
    """An eligible reviewer together with their current workload."""
    id: int
    username: str
    email: str
    role: str
    total_xp: int
    missed_reviews: int
    active_assignments: int
    last_active_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class AssignmentResult(BaseModel):
    """Outcome of assign_reviewers. Business failures land in errors."""
    success: bool = False
    assigned_reviewers: list[ReviewerCandidate] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class EligibilityDecision(BaseModel):
    """Whether a single user may be assigned, and why not."""
    can_assign: bool
    reason: Optional[str] = None


class ReviewerWorkload(BaseModel):
    """Snapshot of a reviewer's load."""
    reviewer_id: int
    active_assignments: int
    completed_this_week: int
    missed_reviews: int


class EnsureStatus(str, Enum):
    """Outcome of ensure_review_assignments."""
    ASSIGNED = "ASSIGNED"
    SKIPPED_ALREADY_ASSIGNED = "SKIPPED_ALREADY_ASSIGNED"
    FAILED = "FAILED"


class EnsureAssignmentsResult(BaseModel):
    """Outcome of topping a submission up to its required reviewer count."""
    success: bool
    status: EnsureStatus
    assignment_result: Optional[AssignmentResult] = None
    existing_assignments: Optional[int] = None
    error: Optional[str] = None


class AssignReviewersRequest(PoolOptions):
    """Request body for assigning reviewers over HTTP."""
    author_user_id: int = Field(..., description="Submission author, excluded from the pool")
