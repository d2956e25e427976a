"""Deadline sweep: reminders, overdue penalties and reassignment."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, assert_never

from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import Clock, utcnow
from ..config.settings import ReviewpoolConfig
from ..errors import DuplicateTransactionError
from ..integrations.base import AuditLogger, LedgerService, NotificationStore
from ..integrations.notifications import reminder_dedupe_key
from ..models import (
    ACTIVE_STATUSES,
    MONITORED_STATUSES,
    AssignmentStatus,
    NotificationType,
    ReviewAssignment,
    TransactionType,
)
from ..penalties import PenaltyEscalator
from ..pool import ReviewerPoolService
from ..schemas import (
    BulkReshuffleResult,
    DeadlineMonitorResult,
    DeadlineState,
    DeadlineStatus,
    PoolOptions,
    ReshuffleFailureReason,
    ReshuffleResult,
)
from ..storage.repositories import AssignmentRepository
from ..storage.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True)
class TrackedAssignment:
    """Snapshot of an assignment taken at the start of a sweep."""
    id: int
    submission_id: int
    reviewer_id: int
    author_user_id: int
    status: AssignmentStatus
    deadline: datetime

    @classmethod
    def from_model(cls, assignment: ReviewAssignment) -> "TrackedAssignment":
        return cls(
            id=assignment.id,
            submission_id=assignment.submission_id,
            reviewer_id=assignment.reviewer_id,
            author_user_id=assignment.submission.user_id,
            status=assignment.status,
            deadline=assignment.deadline,
        )


def hours_until(deadline: datetime, now: datetime) -> float:
    """Signed hours from ``now`` to ``deadline``; negative once overdue."""
    return (deadline - now).total_seconds() / SECONDS_PER_HOUR


class DeadlineMonitorService:
    """Periodic sweep over open assignments.

    Every step is safe to repeat. Penalties are keyed in the ledger by
    (reviewer, submission), reminders by a notification dedupe key, and
    status changes are conditional updates.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        config: ReviewpoolConfig,
        pool: ReviewerPoolService,
        ledger: LedgerService,
        notifications: NotificationStore,
        audit: AuditLogger,
        escalator: Optional[PenaltyEscalator] = None,
        clock: Clock = utcnow,
    ):
        self.uow = uow
        self.config = config
        self.pool = pool
        self.ledger = ledger
        self.notifications = notifications
        self.audit = audit
        self.escalator = escalator or PenaltyEscalator(ledger, config.missed_review_penalty_xp)
        self.clock = clock

    async def process_deadlines(self) -> DeadlineMonitorResult:
        """Run one sweep over PENDING, IN_PROGRESS and MISSED assignments.

        Returns:
            DeadlineMonitorResult with per-assignment errors collected
        """
        result = DeadlineMonitorResult()

        try:
            tracked = await self.uow.run(self._load_tracked, label="load monitored assignments")
        except Exception as e:
            logger.error(f"Failed to fetch assignments for deadline sweep: {e}")
            result.errors.append(f"Failed to fetch assignments: {e}")
            return result

        now = self.clock()

        for assignment in tracked:
            result.processed += 1
            try:
                await self._process_assignment(assignment, now, result)
            except Exception as e:
                logger.error(f"Error processing assignment {assignment.id}: {e}", exc_info=True)
                result.errors.append(f"Assignment {assignment.id}: {e}")

        logger.info(
            f"Deadline sweep complete: {result.processed} processed, {result.reminders} reminders, "
            f"{result.reassignments} reassignments, {result.penalties} penalties, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _load_tracked(self, session: AsyncSession) -> list[TrackedAssignment]:
        assignments = await AssignmentRepository(session).list_by_status(
            MONITORED_STATUSES, with_relations=True
        )
        return [TrackedAssignment.from_model(assignment) for assignment in assignments]

    async def _process_assignment(
        self, assignment: TrackedAssignment, now: datetime, result: DeadlineMonitorResult
    ) -> None:
        hours = hours_until(assignment.deadline, now)
        status = assignment.status

        if status is AssignmentStatus.MISSED:
            # Overdue rows become MISSED first; reassignment waits for a later sweep
            if abs(hours) >= self.config.reassignment_delay_hours:
                if await self._handle_reassignment(assignment):
                    result.reassignments += 1
        elif status is AssignmentStatus.PENDING or status is AssignmentStatus.IN_PROGRESS:
            if hours <= 0:
                if await self._handle_overdue(assignment, now):
                    result.penalties += 1
            elif await self._check_reminder(assignment, hours):
                result.reminders += 1
        elif status is AssignmentStatus.COMPLETED or status is AssignmentStatus.REASSIGNED:
            logger.debug(f"Skipping terminal assignment {assignment.id} ({status.value})")
        else:
            assert_never(status)

    async def _handle_overdue(self, assignment: TrackedAssignment, now: datetime) -> bool:
        """Penalize the reviewer once and mark the assignment MISSED.

        Returns:
            True if a penalty was applied by this call
        """

        async def work(session: AsyncSession) -> bool:
            assignments = AssignmentRepository(session)
            current = await assignments.get(assignment.id)
            if current is None or current.status not in ACTIVE_STATUSES:
                logger.info(f"Assignment {assignment.id} already handled")
                return False

            penalized = False
            already_penalized = await self.ledger.has_transaction(
                session,
                assignment.reviewer_id,
                TransactionType.PENALTY,
                str(assignment.submission_id),
            )
            if not already_penalized:
                outcome = await self.escalator.penalize_missed_review(
                    session, assignment.reviewer_id, assignment.submission_id, now
                )
                penalized = outcome is not None

            await assignments.transition(assignment.id, AssignmentStatus.MISSED, ACTIVE_STATUSES)
            return penalized

        label = f"overdue assignment {assignment.id}"
        try:
            penalized = await self.uow.run(work, label=label)
        except DuplicateTransactionError:
            # Another sweep recorded the penalty first; the re-run only flips the status
            logger.info(f"Penalty for assignment {assignment.id} recorded concurrently, re-running")
            penalized = await self.uow.run(work, label=label)

        if penalized:
            logger.warning(
                f"Reviewer {assignment.reviewer_id} missed the deadline for "
                f"submission {assignment.submission_id}"
            )
        return penalized

    async def _handle_reassignment(self, assignment: TrackedAssignment) -> bool:
        """Replace the reviewer of a MISSED assignment.

        Returns:
            True if a new reviewer was assigned and the old row retired
        """
        outcome = await self._reassign(
            assignment,
            expected=[AssignmentStatus.MISSED],
            reason="Review deadline missed",
            action="REVIEW_DEADLINE_REASSIGN",
        )
        if outcome.reason is ReshuffleFailureReason.NO_REPLACEMENT_AVAILABLE:
            logger.warning(
                f"No replacement reviewer for assignment {assignment.id}, retrying next sweep"
            )
        elif outcome.reason is ReshuffleFailureReason.ALREADY_PROCESSED:
            logger.warning(f"Assignment {assignment.id} left MISSED before it could be retired")
        return outcome.success

    async def _reassign(
        self,
        assignment: TrackedAssignment,
        expected: list[AssignmentStatus],
        reason: str,
        action: str,
        admin_id: str = "system",
        dry_run: bool = False,
    ) -> ReshuffleResult:
        """Hand an assignment to the best eligible reviewer not yet on the submission.

        Retiring the old row and writing the replacement happen in one
        transaction, so a failure leaves neither behind.
        """
        result = ReshuffleResult(
            assignment_id=assignment.id,
            submission_id=assignment.submission_id,
            previous_reviewer_id=assignment.reviewer_id,
            dry_run=dry_run,
        )

        candidates = await self.pool.get_available_reviewers(
            assignment.submission_id,
            assignment.author_user_id,
            PoolOptions(exclude_user_ids=[assignment.reviewer_id]),
        )
        if not candidates:
            result.reason = ReshuffleFailureReason.NO_REPLACEMENT_AVAILABLE
            return result

        # Already in selection order
        candidate = candidates[0]
        result.candidate_reviewer_id = candidate.id
        if dry_run:
            result.success = True
            return result

        now = self.clock()

        async def swap(session: AsyncSession) -> Optional[ReviewAssignment]:
            moved = await AssignmentRepository(session).transition(
                assignment.id, AssignmentStatus.REASSIGNED, expected
            )
            if not moved:
                return None
            [replacement] = await self.pool.writer.write_assignments(
                session, assignment.submission_id, [candidate.id], now
            )
            await self.pool.writer.refresh_review_count(session, assignment.submission_id)
            return replacement

        replacement = await self.uow.run(swap, label=f"reassign assignment {assignment.id}")
        if replacement is None:
            result.reason = ReshuffleFailureReason.ALREADY_PROCESSED
            return result

        result.success = True
        result.new_assignment_id = replacement.id
        result.warnings.extend(
            await self.pool.notify_assigned(assignment.submission_id, [replacement], [candidate])
        )

        await self.audit.log_admin_action(
            action,
            "review_assignment",
            str(assignment.id),
            details={
                "submissionId": assignment.submission_id,
                "previousReviewerId": assignment.reviewer_id,
                "newReviewerIds": [candidate.id],
                "newAssignmentId": replacement.id,
                "reason": reason,
            },
            admin_id=admin_id,
        )

        logger.info(
            f"Reassigned submission {assignment.submission_id} from reviewer "
            f"{assignment.reviewer_id} to {candidate.id} ({reason})"
        )
        return result

    async def reshuffle_assignment(
        self,
        assignment_id: int,
        reason: str = "manual:admin",
        dry_run: bool = False,
        admin_id: str = "system",
    ) -> ReshuffleResult:
        """Move an open or MISSED assignment to a different reviewer on request.

        An open assignment that is already overdue goes through the normal
        missed-review penalty first. One that is still in time is released
        without penalty. When nobody eligible is left the assignment stays
        where it is and the result asks for manual follow-up.

        Args:
            assignment_id: Assignment to move
            reason: Why, recorded in the audit log
            dry_run: Only report who would be picked
            admin_id: Who asked, for the audit trail

        Returns:
            ReshuffleResult
        """
        loaded = await self.uow.run(
            lambda session: AssignmentRepository(session).get_with_submission(assignment_id),
            label=f"load assignment {assignment_id}",
        )
        if loaded is None:
            return ReshuffleResult(
                assignment_id=assignment_id, reason=ReshuffleFailureReason.NOT_FOUND, dry_run=dry_run
            )
        if loaded.status not in MONITORED_STATUSES:
            return ReshuffleResult(
                assignment_id=assignment_id,
                submission_id=loaded.submission_id,
                previous_reviewer_id=loaded.reviewer_id,
                reason=ReshuffleFailureReason.ALREADY_PROCESSED,
                dry_run=dry_run,
            )

        assignment = TrackedAssignment.from_model(loaded)
        now = self.clock()
        penalty_applied = False

        if assignment.status is AssignmentStatus.MISSED:
            expected = [AssignmentStatus.MISSED]
        elif hours_until(assignment.deadline, now) <= 0 and not dry_run:
            penalty_applied = await self._handle_overdue(assignment, now)
            expected = [AssignmentStatus.MISSED]
        else:
            expected = list(ACTIVE_STATUSES)

        result = await self._reassign(
            assignment,
            expected=expected,
            reason=reason,
            action="REVIEW_RESHUFFLE",
            admin_id=admin_id,
            dry_run=dry_run,
        )
        result.penalty_applied = penalty_applied
        return result

    async def reshuffle_submission(
        self,
        submission_id: int,
        reason: str = "manual:admin",
        dry_run: bool = False,
        admin_id: str = "system",
    ) -> BulkReshuffleResult:
        """Reshuffle every PENDING, IN_PROGRESS and MISSED assignment on a submission."""
        bulk = BulkReshuffleResult(submission_id=submission_id, dry_run=dry_run)

        assignment_ids = await self.uow.run(
            lambda session: self._load_reshufflable_ids(session, submission_id),
            label=f"load assignments for submission {submission_id}",
        )

        for assignment_id in assignment_ids:
            bulk.total_processed += 1
            try:
                result = await self.reshuffle_assignment(assignment_id, reason, dry_run, admin_id)
            except Exception as e:
                logger.error(f"Failed to reshuffle assignment {assignment_id}: {e}", exc_info=True)
                result = ReshuffleResult(
                    assignment_id=assignment_id,
                    submission_id=submission_id,
                    dry_run=dry_run,
                    message=f"Assignment {assignment_id}: {e}",
                )
            if result.success:
                bulk.reshuffled += 1
            bulk.results.append(result)

        if bulk.reshuffled and not dry_run:
            await self.audit.log_admin_action(
                "REVIEW_BULK_RESHUFFLE",
                "submission",
                str(submission_id),
                details={
                    "assignmentIds": assignment_ids,
                    "reshuffledCount": bulk.reshuffled,
                    "totalProcessed": bulk.total_processed,
                    "reason": reason,
                },
                admin_id=admin_id,
            )

        logger.info(
            f"Bulk reshuffle of submission {submission_id}: {bulk.reshuffled} of "
            f"{bulk.total_processed} reshuffled{' (dry run)' if dry_run else ''}"
        )
        return bulk

    async def _load_reshufflable_ids(self, session: AsyncSession, submission_id: int) -> list[int]:
        assignments = await AssignmentRepository(session).list_for_submission(
            submission_id, MONITORED_STATUSES
        )
        return [assignment.id for assignment in assignments]

    async def _check_reminder(self, assignment: TrackedAssignment, hours: float) -> bool:
        """Send the reminder for the checkpoint ``hours`` falls on, if any."""
        tolerance = self.config.reminder_tolerance_hours

        for interval in self.config.reminder_intervals_hours:
            if abs(hours - interval) < tolerance:
                return await self._send_reminder(assignment, interval)

        return False

    async def _send_reminder(self, assignment: TrackedAssignment, interval: float) -> bool:
        dedupe_key = reminder_dedupe_key(assignment.id, interval)
        plural = "" if interval == 1 else "s"

        async def work(session: AsyncSession) -> bool:
            if await self.notifications.exists(
                session, assignment.reviewer_id, NotificationType.DEADLINE_REMINDER, dedupe_key
            ):
                return False

            notification = await self.notifications.create(
                session,
                assignment.reviewer_id,
                NotificationType.DEADLINE_REMINDER,
                title="Review Deadline Warning",
                message=f"You have a review due in approximately {interval:g} hour{plural}.",
                data={
                    "assignmentId": assignment.id,
                    "submissionId": assignment.submission_id,
                    "reminderInterval": interval,
                    "deadline": assignment.deadline.isoformat(),
                },
                dedupe_key=dedupe_key,
            )
            return notification is not None

        sent = await self.uow.run(work, label=f"reminder for assignment {assignment.id}")
        if sent:
            logger.info(f"Sent {interval:g}h reminder for assignment {assignment.id}")
        return sent

    async def get_deadline_statuses(self) -> list[DeadlineStatus]:
        """Urgency view of every PENDING or IN_PROGRESS assignment, earliest first."""
        assignments = await self.uow.run(
            lambda session: AssignmentRepository(session).list_by_status(ACTIVE_STATUSES),
            label="load deadline statuses",
        )
        now = self.clock()
        return [self._deadline_status(assignment, now) for assignment in assignments]

    async def get_urgent_assignments(self) -> list[DeadlineStatus]:
        """Open assignments due within the urgent threshold, overdue ones included."""
        return [
            status
            for status in await self.get_deadline_statuses()
            if status.status in (DeadlineState.URGENT, DeadlineState.OVERDUE)
        ]

    def _deadline_status(self, assignment: ReviewAssignment, now: datetime) -> DeadlineStatus:
        hours = hours_until(assignment.deadline, now)

        if hours <= 0:
            state = DeadlineState.OVERDUE
        elif hours <= self.config.urgent_threshold_hours:
            state = DeadlineState.URGENT
        else:
            state = DeadlineState.UPCOMING

        return DeadlineStatus(
            assignment_id=assignment.id,
            submission_id=assignment.submission_id,
            reviewer_id=assignment.reviewer_id,
            deadline=assignment.deadline,
            status=state,
            hours_remaining=round(hours, 1),
        )

    async def extend_deadline(
        self,
        assignment_id: int,
        additional_hours: float,
        reason: str,
        admin_id: str = "system",
    ) -> bool:
        """Push an open assignment's deadline back.

        Args:
            assignment_id: Assignment to extend
            additional_hours: Hours to add, must be positive
            reason: Why the extension was granted
            admin_id: Who granted it, for the audit trail

        Returns:
            True if the deadline moved
        """
        if additional_hours <= 0:
            logger.warning(f"Refusing non-positive extension of {additional_hours}h for {assignment_id}")
            return False

        async def work(session: AsyncSession) -> Optional[tuple[ReviewAssignment, datetime]]:
            assignments = AssignmentRepository(session)
            assignment = await assignments.get(assignment_id)
            if assignment is None or assignment.status not in ACTIVE_STATUSES:
                return None

            previous = assignment.deadline
            new_deadline = previous + timedelta(hours=additional_hours)
            await assignments.set_deadline(assignment_id, new_deadline)
            return assignment, previous

        try:
            extended = await self.uow.run(work, label=f"extend assignment {assignment_id}")
        except Exception as e:
            logger.error(f"Error extending deadline for assignment {assignment_id}: {e}")
            return False

        if extended is None:
            logger.info(f"Assignment {assignment_id} cannot be extended")
            return False

        assignment, previous = extended
        new_deadline = previous + timedelta(hours=additional_hours)

        await self.audit.log_admin_action(
            "REVIEW_DEADLINE_EXTENDED",
            "review_assignment",
            str(assignment_id),
            details={
                "previousDeadline": previous.isoformat(),
                "newDeadline": new_deadline.isoformat(),
                "additionalHours": additional_hours,
                "reason": reason,
            },
            admin_id=admin_id,
        )
        await self._notify_extension(assignment, new_deadline, additional_hours, reason)

        logger.info(
            f"Extended deadline for assignment {assignment_id} by {additional_hours:g}h. Reason: {reason}"
        )
        return True

    async def _notify_extension(
        self,
        assignment: ReviewAssignment,
        new_deadline: datetime,
        additional_hours: float,
        reason: str,
    ) -> None:
        async def work(session: AsyncSession):
            return await self.notifications.create(
                session,
                assignment.reviewer_id,
                NotificationType.DEADLINE_EXTENDED,
                title="Review Deadline Extended",
                message=(
                    f"Your review deadline was extended by {additional_hours:g} hours "
                    f"to {new_deadline:%Y-%m-%d %H:%M} UTC. Reason: {reason}"
                ),
                data={
                    "assignmentId": assignment.id,
                    "submissionId": assignment.submission_id,
                    "deadline": new_deadline.isoformat(),
                },
            )

        try:
            await self.uow.run(work, label=f"notify extension of assignment {assignment.id}")
        except Exception as e:
            logger.warning(f"Failed to notify reviewer {assignment.reviewer_id} of extension: {e}")
