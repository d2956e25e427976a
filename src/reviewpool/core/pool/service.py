"""Reviewer pool service: eligibility, balanced selection and assignment."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import Clock, utcnow
from ..config.settings import ReviewpoolConfig
from ..errors import InsufficientReviewersError
from ..integrations.base import NotificationStore
from ..models import NotificationType, ReviewAssignment, UserRole
from ..schemas import (
    AssignmentResult,
    EligibilityDecision,
    EnsureAssignmentsResult,
    EnsureStatus,
    PoolOptions,
    ReviewerCandidate,
    ReviewerWorkload,
)
from ..storage.repositories import AssignmentRepository, UserRepository
from ..storage.unit_of_work import UnitOfWork
from .eligibility import EligibilityFilter, EligibilityPolicy
from .selector import rank_candidates, select_reviewers
from .writer import AssignmentWriter

logger = logging.getLogger(__name__)


class ReviewerPoolService:
    """Selects eligible, workload-balanced reviewers and persists assignments.

    Business failures (no reviewers, too few reviewers, storage errors on
    the core write) are reported through ``AssignmentResult.errors``;
    side effects after a successful write only ever add warnings.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        config: ReviewpoolConfig,
        notifications: NotificationStore,
        writer: Optional[AssignmentWriter] = None,
        clock: Clock = utcnow,
    ):
        """Initialize the service.

        Args:
            uow: Transaction runner with retry
            config: Pool and deadline policy
            notifications: Store used to tell reviewers about new work
            writer: Assignment writer, built from the config if omitted
            clock: Source of the current time
        """
        self.uow = uow
        self.config = config
        self.notifications = notifications
        self.writer = writer or AssignmentWriter(config.review_window_hours)
        self.clock = clock

    def _policy(self, options: PoolOptions) -> EligibilityPolicy:
        return EligibilityPolicy(
            max_active_assignments=options.max_active_assignments or self.config.max_active_assignments,
            min_reviewer_xp=self.config.min_reviewer_xp,
            reviewer_roles=frozenset(self.config.reviewer_roles),
            xp_floor_exempt_roles=frozenset(self.config.xp_floor_exempt_roles),
            required_task_types=frozenset(options.task_types),
        )

    def _reviewer_roles(self, policy: EligibilityPolicy) -> list[UserRole]:
        return [role for role in UserRole if role.value in policy.reviewer_roles]

    async def get_available_reviewers(
        self,
        submission_id: int,
        author_user_id: int,
        options: Optional[PoolOptions] = None,
    ) -> list[ReviewerCandidate]:
        """Eligible reviewers for a submission, in selection order.

        Anyone who has held an assignment on the submission before, in any
        status, is left out.
        """
        options = options or PoolOptions()
        policy = self._policy(options)
        now = self.clock()

        async def load(session: AsyncSession) -> list[ReviewerCandidate]:
            users = await UserRepository(session).list_by_roles(
                self._reviewer_roles(policy),
                exclude_ids=[author_user_id, *options.exclude_user_ids],
            )
            assignments = AssignmentRepository(session)
            active_counts = await assignments.count_active_by_reviewer(user.id for user in users)
            already_assigned = await assignments.all_reviewer_ids(submission_id)

            return EligibilityFilter(policy).filter(
                users,
                active_counts,
                author_user_id,
                now,
                exclude_user_ids=set(options.exclude_user_ids) | already_assigned,
            )

        candidates = await self.uow.run(load, label=f"load reviewers for submission {submission_id}")
        return rank_candidates(candidates)

    async def assign_reviewers(
        self,
        submission_id: int,
        author_user_id: int,
        options: Optional[PoolOptions] = None,
    ) -> AssignmentResult:
        """Assign the least-loaded eligible reviewers to a submission.

        Args:
            submission_id: Submission to review
            author_user_id: Author of the submission, never assigned
            options: Per-call overrides

        Returns:
            AssignmentResult; ``success`` is False only when no assignment
            row was written
        """
        options = options or PoolOptions()
        result = AssignmentResult()
        minimum_reviewers = options.minimum_reviewers or self.config.minimum_reviewers
        allow_partial = (
            options.allow_partial_assignment
            if options.allow_partial_assignment is not None
            else self.config.allow_partial_assignment
        )

        try:
            candidates = await self.get_available_reviewers(submission_id, author_user_id, options)

            try:
                selection = select_reviewers(candidates, minimum_reviewers, allow_partial)
            except InsufficientReviewersError as e:
                if e.found == 0:
                    result.errors.append(
                        f"No eligible reviewers available. Need at least {minimum_reviewers}"
                    )
                else:
                    result.errors.append(str(e))
                return result

            result.warnings.extend(selection.warnings)
            reviewer_ids = [reviewer.id for reviewer in selection.reviewers]
            now = self.clock()

            try:
                assignments = await self.uow.run(
                    lambda session: self.writer.write_assignments(
                        session, submission_id, reviewer_ids, now
                    ),
                    label=f"create assignments for submission {submission_id}",
                )
            except Exception as e:
                logger.error(f"Failed to create assignments for submission {submission_id}: {e}")
                result.errors.append(f"Failed to create assignments: {e}")
                return result

            deadline = assignments[0].deadline
            try:
                await self.uow.run(
                    lambda session: self.writer.update_submission(session, submission_id, deadline),
                    label=f"update submission {submission_id}",
                )
            except Exception as e:
                logger.warning(f"Failed to update submission {submission_id} after assignment: {e}")
                result.warnings.append(f"Failed to update submission status: {e}")

            result.success = True
            result.assigned_reviewers = selection.reviewers

            result.warnings.extend(
                await self.notify_assigned(submission_id, assignments, selection.reviewers)
            )

            logger.info(
                f"Assigned {len(selection.reviewers)} reviewer(s) to submission {submission_id}"
            )
            return result

        except Exception as e:
            logger.error(f"Error assigning reviewers to submission {submission_id}: {e}", exc_info=True)
            result.errors.append(f"Unexpected error: {e}")
            return result

    async def notify_assigned(
        self,
        submission_id: int,
        assignments: list[ReviewAssignment],
        reviewers: list[ReviewerCandidate],
    ) -> list[str]:
        """Tell each new reviewer about their assignment.

        Returns:
            Warnings for reviewers who could not be notified
        """
        warnings: list[str] = []
        names = {reviewer.id: reviewer.username for reviewer in reviewers}

        for assignment in assignments:
            async def notify(session: AsyncSession, assignment: ReviewAssignment = assignment):
                return await self.notifications.create(
                    session,
                    assignment.reviewer_id,
                    NotificationType.REVIEW_ASSIGNED,
                    title="New review assignment",
                    message=(
                        f"You have been assigned to review submission {submission_id}. "
                        f"Deadline: {assignment.deadline:%Y-%m-%d %H:%M} UTC."
                    ),
                    data={
                        "assignmentId": assignment.id,
                        "submissionId": submission_id,
                        "deadline": assignment.deadline.isoformat(),
                    },
                    dedupe_key=f"assignment:{assignment.id}:assigned",
                )

            try:
                await self.uow.run(notify, label=f"notify reviewer {assignment.reviewer_id}")
            except Exception as e:
                logger.warning(
                    f"Failed to notify reviewer {assignment.reviewer_id} about "
                    f"submission {submission_id}: {e}"
                )
                warnings.append(
                    f"Failed to notify reviewer {names.get(assignment.reviewer_id, assignment.reviewer_id)}"
                )

        return warnings

    async def ensure_review_assignments(
        self,
        submission_id: int,
        author_user_id: int,
        options: Optional[PoolOptions] = None,
    ) -> EnsureAssignmentsResult:
        """Top a submission up to its required number of reviewers.

        Existing reviewers (anything not reassigned away) count toward the
        requirement and are excluded from the new pick.
        """
        options = options or PoolOptions()
        required = options.minimum_reviewers or self.config.minimum_reviewers

        try:
            existing = await self.uow.run(
                lambda session: AssignmentRepository(session).live_reviewer_ids(submission_id),
                label=f"load assignments for submission {submission_id}",
            )
        except Exception as e:
            logger.error(f"Error loading assignments for submission {submission_id}: {e}")
            return EnsureAssignmentsResult(success=False, status=EnsureStatus.FAILED, error=str(e))

        if len(existing) >= required:
            logger.info(
                f"Skipping auto-assignment for {submission_id}: "
                f"already has {len(existing)} reviewer(s)"
            )
            return EnsureAssignmentsResult(
                success=True,
                status=EnsureStatus.SKIPPED_ALREADY_ASSIGNED,
                existing_assignments=len(existing),
            )

        remaining = required - len(existing)
        merged = options.model_copy(
            update={
                "exclude_user_ids": sorted(set(options.exclude_user_ids) | set(existing)),
                "minimum_reviewers": remaining,
            }
        )
        assignment_result = await self.assign_reviewers(submission_id, author_user_id, merged)

        if not assignment_result.success:
            error = "; ".join(assignment_result.errors) or "Unknown error"
            logger.warning(f"Failed to auto-assign reviewers for {submission_id}: {error}")
            return EnsureAssignmentsResult(
                success=False,
                status=EnsureStatus.FAILED,
                assignment_result=assignment_result,
                existing_assignments=len(existing),
                error=error,
            )

        assigned = len(assignment_result.assigned_reviewers)
        if assigned < remaining:
            message = (
                f"Auto-assignment incomplete: needed {remaining}, assigned {assigned} "
                f"(short {remaining - assigned})"
            )
            if message not in assignment_result.warnings:
                assignment_result.warnings.append(message)
            return EnsureAssignmentsResult(
                success=False,
                status=EnsureStatus.FAILED,
                assignment_result=assignment_result,
                existing_assignments=len(existing),
                error=message,
            )

        return EnsureAssignmentsResult(
            success=True,
            status=EnsureStatus.ASSIGNED,
            assignment_result=assignment_result,
            existing_assignments=len(existing),
        )

    async def can_assign_reviewer(
        self,
        reviewer_id: int,
        author_user_id: int,
        options: Optional[PoolOptions] = None,
    ) -> EligibilityDecision:
        """Check one user against the eligibility rules."""
        if reviewer_id == author_user_id:
            return EligibilityDecision(can_assign=False, reason="Cannot review own submission")

        options = options or PoolOptions()
        policy = self._policy(options)
        now = self.clock()

        async def check(session: AsyncSession) -> EligibilityDecision:
            user = await UserRepository(session).get(reviewer_id)
            if user is None:
                return EligibilityDecision(can_assign=False, reason="Reviewer not found")

            active_counts = await AssignmentRepository(session).count_active_by_reviewer([reviewer_id])
            reason = EligibilityFilter(policy).rejection_reason(
                user,
                active_counts.get(reviewer_id, 0),
                author_user_id,
                now,
                exclude_user_ids=options.exclude_user_ids,
            )
            return EligibilityDecision(can_assign=reason is None, reason=reason)

        return await self.uow.run(check, label=f"check reviewer {reviewer_id}")

    async def get_reviewer_workload(self, reviewer_id: int) -> Optional[ReviewerWorkload]:
        """Active, completed-this-week and missed counts for a reviewer.

        Returns:
            ReviewerWorkload, or None if the reviewer does not exist
        """
        week_start = start_of_week(self.clock())

        async def load(session: AsyncSession) -> Optional[ReviewerWorkload]:
            user = await UserRepository(session).get(reviewer_id)
            if user is None:
                return None

            assignments = AssignmentRepository(session)
            active_counts = await assignments.count_active_by_reviewer([reviewer_id])
            completed = await assignments.count_completed_since(reviewer_id, week_start)
            return ReviewerWorkload(
                reviewer_id=reviewer_id,
                active_assignments=active_counts.get(reviewer_id, 0),
                completed_this_week=completed,
                missed_reviews=user.missed_reviews,
            )

        return await self.uow.run(load, label=f"load workload for reviewer {reviewer_id}")


def start_of_week(now: datetime) -> datetime:
    """Monday 00:00 of the week containing ``now``."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=midnight.weekday())
