"""ReviewAssignment model and its status state machine."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..errors import InvalidTransitionError
from ..storage.database import Base, UTCDateTime


class AssignmentStatus(str, Enum):
    """Status of one reviewer's obligation to review one submission."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    MISSED = "MISSED"
    REASSIGNED = "REASSIGNED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "AssignmentStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    def ensure_transition(self, target: "AssignmentStatus") -> None:
        """Raise InvalidTransitionError unless self -> target is allowed."""
        if not self.can_transition_to(target):
            raise InvalidTransitionError(self.value, target.value)


ALLOWED_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    # REASSIGNED from an open status is an operator releasing a reviewer early
    AssignmentStatus.PENDING: frozenset(
        {AssignmentStatus.IN_PROGRESS, AssignmentStatus.MISSED, AssignmentStatus.REASSIGNED}
    ),
    AssignmentStatus.IN_PROGRESS: frozenset(
        {AssignmentStatus.COMPLETED, AssignmentStatus.MISSED, AssignmentStatus.REASSIGNED}
    ),
    AssignmentStatus.MISSED: frozenset({AssignmentStatus.REASSIGNED}),
    AssignmentStatus.COMPLETED: frozenset(),
    AssignmentStatus.REASSIGNED: frozenset(),
}

TERMINAL_STATUSES = frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.REASSIGNED})

# Counted against a reviewer's workload cap
ACTIVE_STATUSES = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS)

# Everything the deadline sweep looks at
MONITORED_STATUSES = (
    AssignmentStatus.PENDING,
    AssignmentStatus.IN_PROGRESS,
    AssignmentStatus.MISSED,
)


class ReviewAssignment(Base):
    """A reviewer's obligation to review one submission before a deadline."""

    __tablename__ = "review_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(AssignmentStatus, native_enum=False, length=32),
        nullable=False,
        default=AssignmentStatus.PENDING,
        index=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    submission: Mapped["Submission"] = relationship("Submission", back_populates="assignments")
    reviewer: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<ReviewAssignment(id={self.id}, submission_id={self.submission_id}, "
            f"reviewer_id={self.reviewer_id}, status='{self.status.value}')>"
        )
