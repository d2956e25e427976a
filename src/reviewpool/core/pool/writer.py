"""Persistence of new assignments and the submission bookkeeping around them."""
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AssignmentStatus, ReviewAssignment
from ..storage.repositories import AssignmentRepository, SubmissionRepository

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_WINDOW_HOURS = 48.0

SATURDAY = 5
SUNDAY = 6


def compute_review_deadline(
    now: datetime, window_hours: float = DEFAULT_REVIEW_WINDOW_HOURS
) -> datetime:
    """Deadline ``window_hours`` after ``now``, moved off weekends.

    A Saturday deadline moves two days and a Sunday deadline one day, so
    both land on Monday at the same time of day.
    """
    deadline = now + timedelta(hours=window_hours)

    weekday = deadline.weekday()
    if weekday == SATURDAY:
        deadline += timedelta(days=2)
    elif weekday == SUNDAY:
        deadline += timedelta(days=1)

    return deadline


class AssignmentWriter:
    """Writes PENDING assignment rows and updates the parent submission."""

    def __init__(self, review_window_hours: float = DEFAULT_REVIEW_WINDOW_HOURS):
        self.review_window_hours = review_window_hours

    def deadline_for(self, now: datetime) -> datetime:
        return compute_review_deadline(now, self.review_window_hours)

    async def write_assignments(
        self,
        session: AsyncSession,
        submission_id: int,
        reviewer_ids: Sequence[int],
        now: datetime,
    ) -> list[ReviewAssignment]:
        """Insert one PENDING row per reviewer, all sharing one deadline."""
        deadline = self.deadline_for(now)
        assignments = [
            ReviewAssignment(
                submission_id=submission_id,
                reviewer_id=reviewer_id,
                deadline=deadline,
                status=AssignmentStatus.PENDING,
                assigned_at=now,
            )
            for reviewer_id in reviewer_ids
        ]
        return await AssignmentRepository(session).create_many(assignments)

    async def update_submission(
        self, session: AsyncSession, submission_id: int, review_deadline: datetime
    ) -> int:
        """Mark the submission as under peer review with its live reviewer count.

        Returns:
            The recomputed review count
        """
        review_count = await AssignmentRepository(session).count_live(submission_id)
        updated = await SubmissionRepository(session).mark_under_review(
            submission_id, review_deadline, review_count
        )
        if not updated:
            raise LookupError(f"Submission {submission_id} not found")
        return review_count

    async def refresh_review_count(self, session: AsyncSession, submission_id: int) -> int:
        """Recompute the live count after an assignment left the pool."""
        review_count = await AssignmentRepository(session).count_live(submission_id)
        await SubmissionRepository(session).set_review_count(submission_id, review_count)
        return review_count
