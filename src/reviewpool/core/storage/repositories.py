"""Repositories wrapping an AsyncSession for each aggregate."""
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models import (
    ACTIVE_STATUSES,
    AssignmentStatus,
    ReviewAssignment,
    Submission,
    SubmissionStatus,
    User,
    UserRole,
)


class UserRepository:
    """Access to reviewer-relevant user state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: User) -> User:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def list_by_roles(
        self, roles: Iterable[UserRole], exclude_ids: Iterable[int] = ()
    ) -> list[User]:
        """Users holding one of ``roles``, minus ``exclude_ids``, ordered by id."""
        query = select(User).where(User.role.in_(list(roles)))
        excluded = list(exclude_ids)
        if excluded:
            query = query.where(User.id.not_in(excluded))
        result = await self.session.execute(query.order_by(User.id))
        return list(result.scalars().all())

    async def increment_missed_reviews(self, user_id: int) -> Optional[int]:
        """Atomically add one to the lifetime missed counter.

        Returns:
            The new count, or None if the user does not exist
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(missed_reviews=User.missed_reviews + 1)
            .returning(User.missed_reviews)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def apply_xp_delta(self, user_id: int, amount: int) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                total_xp=User.total_xp + amount,
                current_week_xp=User.current_week_xp + amount,
            )
            .execution_options(synchronize_session=False)
        )

    async def clamp_negative_xp(self, user_id: int) -> None:
        """Raise negative XP totals back to zero."""
        await self.session.execute(
            update(User)
            .where(User.id == user_id, User.total_xp < 0)
            .values(total_xp=0)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(User)
            .where(User.id == user_id, User.current_week_xp < 0)
            .values(current_week_xp=0)
            .execution_options(synchronize_session=False)
        )

    async def pause_reviewing(self, user_id: int, until: datetime) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(review_paused_until=until)
            .execution_options(synchronize_session=False)
        )

    async def ban_from_reviewing(self, user_id: int) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(review_paused_permanently=True)
            .execution_options(synchronize_session=False)
        )


class SubmissionRepository:
    """Access to the submission fields peer review owns."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, submission: Submission) -> Submission:
        self.session.add(submission)
        await self.session.flush()
        return submission

    async def get(self, submission_id: int) -> Optional[Submission]:
        return await self.session.get(Submission, submission_id)

    async def mark_under_review(
        self, submission_id: int, review_deadline: datetime, review_count: int
    ) -> bool:
        result = await self.session.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(
                status=SubmissionStatus.UNDER_PEER_REVIEW,
                review_deadline=review_deadline,
                review_count=review_count,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_review_count(self, submission_id: int, review_count: int) -> bool:
        result = await self.session.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(review_count=review_count)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


class AssignmentRepository:
    """Access to review assignments. Rows are never deleted."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, assignment: ReviewAssignment) -> ReviewAssignment:
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def create_many(self, assignments: Sequence[ReviewAssignment]) -> list[ReviewAssignment]:
        self.session.add_all(list(assignments))
        await self.session.flush()
        return list(assignments)

    async def get(self, assignment_id: int) -> Optional[ReviewAssignment]:
        return await self.session.get(ReviewAssignment, assignment_id)

    async def get_with_submission(self, assignment_id: int) -> Optional[ReviewAssignment]:
        return await self.session.get(
            ReviewAssignment, assignment_id, options=[selectinload(ReviewAssignment.submission)]
        )

    async def list_by_status(
        self, statuses: Iterable[AssignmentStatus], with_relations: bool = False
    ) -> list[ReviewAssignment]:
        """Assignments in ``statuses``, earliest deadline first."""
        query = (
            select(ReviewAssignment)
            .where(ReviewAssignment.status.in_(list(statuses)))
            .order_by(ReviewAssignment.deadline.asc(), ReviewAssignment.id.asc())
        )
        if with_relations:
            query = query.options(
                selectinload(ReviewAssignment.submission),
                selectinload(ReviewAssignment.reviewer),
            )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_active_by_reviewer(self, reviewer_ids: Iterable[int]) -> dict[int, int]:
        """Number of PENDING/IN_PROGRESS assignments per reviewer."""
        ids = list(reviewer_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(ReviewAssignment.reviewer_id, func.count(ReviewAssignment.id))
            .where(ReviewAssignment.reviewer_id.in_(ids))
            .where(ReviewAssignment.status.in_(ACTIVE_STATUSES))
            .group_by(ReviewAssignment.reviewer_id)
        )
        return {reviewer_id: count for reviewer_id, count in result.all()}

    async def count_completed_since(self, reviewer_id: int, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(ReviewAssignment.id))
            .where(ReviewAssignment.reviewer_id == reviewer_id)
            .where(ReviewAssignment.status == AssignmentStatus.COMPLETED)
            .where(ReviewAssignment.completed_at >= since)
        )
        return result.scalar_one()

    async def all_reviewer_ids(self, submission_id: int) -> set[int]:
        """Everyone who ever held an assignment on the submission, in any status.

        Missed-review penalties are keyed by (reviewer, submission), so a
        reviewer must never be handed the same submission twice.
        """
        result = await self.session.execute(
            select(ReviewAssignment.reviewer_id)
            .where(ReviewAssignment.submission_id == submission_id)
            .distinct()
        )
        return set(result.scalars().all())

    async def list_for_submission(
        self, submission_id: int, statuses: Iterable[AssignmentStatus]
    ) -> list[ReviewAssignment]:
        result = await self.session.execute(
            select(ReviewAssignment)
            .where(ReviewAssignment.submission_id == submission_id)
            .where(ReviewAssignment.status.in_(list(statuses)))
            .order_by(ReviewAssignment.id)
        )
        return list(result.scalars().all())

    async def live_reviewer_ids(self, submission_id: int) -> list[int]:
        """Reviewers of every assignment on the submission that was not reassigned."""
        result = await self.session.execute(
            select(ReviewAssignment.reviewer_id)
            .where(ReviewAssignment.submission_id == submission_id)
            .where(ReviewAssignment.status != AssignmentStatus.REASSIGNED)
            .order_by(ReviewAssignment.id)
        )
        return list(result.scalars().all())

    async def count_live(self, submission_id: int) -> int:
        result = await self.session.execute(
            select(func.count(ReviewAssignment.id))
            .where(ReviewAssignment.submission_id == submission_id)
            .where(ReviewAssignment.status != AssignmentStatus.REASSIGNED)
        )
        return result.scalar_one()

    async def transition(
        self,
        assignment_id: int,
        target: AssignmentStatus,
        expected: Iterable[AssignmentStatus],
    ) -> bool:
        """Conditionally move an assignment to ``target``.

        Every status in ``expected`` must be allowed to reach ``target``.
        The update only applies while the row is still in one of them, so
        repeating it is harmless.

        Returns:
            True if the row changed
        """
        expected = list(expected)
        for status in expected:
            status.ensure_transition(target)

        result = await self.session.execute(
            update(ReviewAssignment)
            .where(ReviewAssignment.id == assignment_id)
            .where(ReviewAssignment.status.in_(expected))
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_deadline(self, assignment_id: int, deadline: datetime) -> bool:
        result = await self.session.execute(
            update(ReviewAssignment)
            .where(ReviewAssignment.id == assignment_id)
            .values(deadline=deadline)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
