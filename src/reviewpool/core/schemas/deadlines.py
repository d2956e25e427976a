"""Deadline monitoring schemas."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DeadlineState(str, Enum):
    """Coarse urgency bucket of an open assignment."""
    UPCOMING = "upcoming"
    URGENT = "urgent"
    OVERDUE = "overdue"


class DeadlineStatus(BaseModel):
    """Deadline view of one open assignment."""
    assignment_id: int
    submission_id: int
    reviewer_id: int
    deadline: datetime
    status: DeadlineState
    hours_remaining: float


class DeadlineMonitorResult(BaseModel):
    """Aggregate counts for one sweep."""
    processed: int = 0
    reminders: int = 0
    reassignments: int = 0
    penalties: int = 0
    errors: list[str] = Field(default_factory=list)


class ExtendDeadlineRequest(BaseModel):
    """Request body for extending an assignment deadline."""
    additional_hours: float = Field(..., gt=0, description="Hours to add to the deadline")
    reason: str = Field(..., min_length=1, max_length=500, description="Why the extension was granted")


class ReshuffleFailureReason(str, Enum):
    """Why an assignment could not be handed to a new reviewer."""
    NOT_FOUND = "not_found"
    ALREADY_PROCESSED = "already_processed"
    NO_REPLACEMENT_AVAILABLE = "no_replacement_available"


class ReshuffleResult(BaseModel):
    """Outcome of moving one assignment to a different reviewer."""
    assignment_id: int
    success: bool = False
    dry_run: bool = False
    reason: Optional[ReshuffleFailureReason] = None
    message: Optional[str] = None
    submission_id: Optional[int] = None
    previous_reviewer_id: Optional[int] = None
    candidate_reviewer_id: Optional[int] = Field(
        None, description="Reviewer picked, or who would be picked on a dry run"
    )
    new_assignment_id: Optional[int] = None
    penalty_applied: bool = Field(
        False, description="The released assignment was overdue and its reviewer was penalized"
    )
    warnings: list[str] = Field(default_factory=list)

    @property
    def needs_manual_follow_up(self) -> bool:
        """Nobody eligible was left; an admin has to pick a reviewer by hand."""
        return self.reason is ReshuffleFailureReason.NO_REPLACEMENT_AVAILABLE


class BulkReshuffleResult(BaseModel):
    """Outcome of reshuffling every open assignment on a submission."""
    submission_id: int
    dry_run: bool = False
    total_processed: int = 0
    reshuffled: int = 0
    results: list[ReshuffleResult] = Field(default_factory=list)


class ReshuffleRequest(BaseModel):
    """Request body for an operator-triggered reshuffle."""
    reason: str = Field("manual:admin", min_length=1, max_length=500)
    dry_run: bool = Field(False, description="Report the candidate without changing anything")
