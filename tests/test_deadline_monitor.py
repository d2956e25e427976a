"""Tests for the deadline sweep and deadline administration."""
from datetime import timedelta

import pytest
from sqlalchemy import select

from reviewpool.core.models import (
    AdminAuditLog,
    AssignmentStatus,
    NotificationType,
    TransactionType,
    UserRole,
)
from reviewpool.core.schemas import DeadlineState, ReshuffleFailureReason

from conftest import NOW


@pytest.fixture
async def author(factory):
    return await factory.user(role=UserRole.USER, username="author")


@pytest.fixture
async def submission(factory, author):
    return await factory.submission(author)


@pytest.fixture
async def reviewer(factory):
    return await factory.user(total_xp=200, current_week_xp=20)


async def audit_actions(db):
    async with db.session() as session:
        result = await session.execute(select(AdminAuditLog).order_by(AdminAuditLog.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_overdue_assignment_is_marked_missed_and_penalized(
    services, factory, submission, reviewer
):
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=2))

    result = await services.deadlines.process_deadlines()

    assert result.processed == 1
    assert result.penalties == 1
    assert result.errors == []

    stored = await factory.get_assignment(assignment.id)
    assert stored.status == AssignmentStatus.MISSED

    user = await factory.get_user(reviewer.id)
    assert user.missed_reviews == 1
    assert user.total_xp == 190

    penalties = await factory.penalties_for(reviewer.id)
    assert len(penalties) == 1
    assert penalties[0].amount == -10
    assert penalties[0].source_id == str(submission.id)


@pytest.mark.asyncio
async def test_repeated_sweeps_penalize_once(services, factory, submission, reviewer):
    await factory.assignment(submission, reviewer, NOW - timedelta(hours=2))

    first = await services.deadlines.process_deadlines()
    second = await services.deadlines.process_deadlines()

    assert first.penalties == 1
    assert second.penalties == 0
    assert second.reassignments == 0

    user = await factory.get_user(reviewer.id)
    assert user.missed_reviews == 1
    assert len(await factory.penalties_for(reviewer.id)) == 1


@pytest.mark.asyncio
async def test_existing_penalty_only_flips_status(services, factory, submission, reviewer, db):
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=1))
    async with db.transaction() as session:
        await services.deadlines.ledger.record_xp_transaction(
            session,
            reviewer.id,
            -10,
            TransactionType.PENALTY,
            "Recorded by an earlier sweep",
            source_id=str(submission.id),
        )

    result = await services.deadlines.process_deadlines()

    assert result.penalties == 0
    assert (await factory.get_assignment(assignment.id)).status == AssignmentStatus.MISSED
    assert (await factory.get_user(reviewer.id)).missed_reviews == 0


@pytest.mark.asyncio
async def test_concurrent_penalty_insert_is_rerun(services, factory, submission, reviewer, db):
    """Another sweep wrote the ledger key between the existence check and the insert."""
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=1))
    ledger = services.deadlines.ledger
    async with db.transaction() as session:
        await ledger.record_xp_transaction(
            session,
            reviewer.id,
            -10,
            TransactionType.PENALTY,
            "Recorded by a concurrent sweep",
            source_id=str(submission.id),
        )

    original = ledger.has_transaction
    checks = []

    async def stale_has_transaction(session, user_id, transaction_type, source_id):
        checks.append(source_id)
        if len(checks) == 1:
            return False
        return await original(session, user_id, transaction_type, source_id)

    ledger.has_transaction = stale_has_transaction

    result = await services.deadlines.process_deadlines()

    assert result.errors == []
    assert result.penalties == 0
    assert len(checks) == 2
    assert (await factory.get_assignment(assignment.id)).status == AssignmentStatus.MISSED

    user = await factory.get_user(reviewer.id)
    assert user.missed_reviews == 0
    assert len(await factory.penalties_for(reviewer.id)) == 1


@pytest.mark.asyncio
async def test_missed_count_never_decreases(services, factory, clock, author, reviewer):
    for _ in range(3):
        await factory.user()

    counts = []
    for hours_ago in (2, 3, 4):
        submission = await factory.submission(author)
        await factory.assignment(submission, reviewer, NOW - timedelta(hours=hours_ago))
        await services.deadlines.process_deadlines()
        counts.append((await factory.get_user(reviewer.id)).missed_reviews)

    clock.advance(hours=30)
    await services.deadlines.process_deadlines()
    counts.append((await factory.get_user(reviewer.id)).missed_reviews)

    assert counts == sorted(counts)
    assert counts[-1] == 3


@pytest.mark.asyncio
async def test_missed_assignment_is_reassigned(services, factory, db, submission, reviewer):
    replacement = await factory.user(total_xp=100)
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=30), AssignmentStatus.MISSED
    )

    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 1
    assert result.errors == []

    assignments = await factory.assignments_for(submission.id)
    by_id = {a.id: a for a in assignments}
    assert by_id[missed.id].status == AssignmentStatus.REASSIGNED

    new_rows = [a for a in assignments if a.id != missed.id]
    assert len(new_rows) == 1
    assert new_rows[0].reviewer_id == replacement.id
    assert new_rows[0].status == AssignmentStatus.PENDING

    stored = await factory.get_submission(submission.id)
    assert stored.review_count == 1

    actions = [entry.action for entry in await audit_actions(db)]
    assert actions == ["REVIEW_DEADLINE_REASSIGN"]


@pytest.mark.asyncio
async def test_recently_missed_assignment_waits(services, factory, submission, reviewer):
    await factory.user()
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=10), AssignmentStatus.MISSED
    )

    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 0
    assert (await factory.get_assignment(missed.id)).status == AssignmentStatus.MISSED


@pytest.mark.asyncio
async def test_reassignment_without_replacement_stays_missed(services, factory, submission, reviewer):
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=30), AssignmentStatus.MISSED
    )

    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 0
    assert result.errors == []
    assert (await factory.get_assignment(missed.id)).status == AssignmentStatus.MISSED


@pytest.mark.asyncio
async def test_reminder_sent_once_per_checkpoint(services, factory, submission, reviewer):
    assignment = await factory.assignment(
        submission, reviewer, NOW + timedelta(hours=6, minutes=10)
    )

    first = await services.deadlines.process_deadlines()
    second = await services.deadlines.process_deadlines()

    assert first.reminders == 1
    assert second.reminders == 0

    reminders = await factory.notifications_for(reviewer.id, NotificationType.DEADLINE_REMINDER)
    assert len(reminders) == 1
    assert reminders[0].dedupe_key == f"assignment:{assignment.id}:reminder:6"
    assert reminders[0].data["reminderInterval"] == 6
    assert reminders[0].message == "You have a review due in approximately 6 hours."


@pytest.mark.asyncio
async def test_each_checkpoint_gets_its_own_reminder(services, factory, clock, submission, reviewer):
    await factory.assignment(submission, reviewer, NOW + timedelta(hours=24))

    assert (await services.deadlines.process_deadlines()).reminders == 1
    clock.advance(hours=18)
    assert (await services.deadlines.process_deadlines()).reminders == 1
    clock.advance(hours=5)
    assert (await services.deadlines.process_deadlines()).reminders == 1

    reminders = await factory.notifications_for(reviewer.id, NotificationType.DEADLINE_REMINDER)
    assert [n.data["reminderInterval"] for n in reminders] == [24, 6, 1]


@pytest.mark.asyncio
async def test_no_reminder_outside_tolerance(services, factory, submission, reviewer):
    await factory.assignment(submission, reviewer, NOW + timedelta(hours=12))
    await factory.assignment(submission, reviewer, NOW + timedelta(hours=6, minutes=30))

    result = await services.deadlines.process_deadlines()

    assert result.processed == 2
    assert result.reminders == 0


@pytest.mark.asyncio
async def test_sweep_collects_per_assignment_errors(services, factory, submission, reviewer):
    await factory.assignment(submission, reviewer, NOW - timedelta(hours=1))
    healthy = await factory.assignment(submission, reviewer, NOW + timedelta(hours=1))

    async def broken(*args, **kwargs):
        raise RuntimeError("ledger offline")

    services.deadlines.escalator.penalize_missed_review = broken

    result = await services.deadlines.process_deadlines()

    assert result.processed == 2
    assert len(result.errors) == 1
    assert result.errors[0].endswith("ledger offline")
    assert result.reminders == 1
    assert (await factory.get_assignment(healthy.id)).status == AssignmentStatus.PENDING


@pytest.mark.asyncio
async def test_completed_assignments_are_not_swept(services, factory, submission, reviewer):
    await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=5), AssignmentStatus.COMPLETED
    )
    await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=50), AssignmentStatus.REASSIGNED
    )

    result = await services.deadlines.process_deadlines()

    assert result.processed == 0


@pytest.mark.asyncio
async def test_deadline_statuses(services, factory, submission, reviewer):
    overdue = await factory.assignment(submission, reviewer, NOW - timedelta(hours=1, minutes=6))
    urgent = await factory.assignment(submission, reviewer, NOW + timedelta(hours=5, minutes=30))
    upcoming = await factory.assignment(submission, reviewer, NOW + timedelta(hours=30))
    await factory.assignment(submission, reviewer, NOW - timedelta(hours=40), AssignmentStatus.MISSED)

    statuses = await services.deadlines.get_deadline_statuses()

    assert [(s.assignment_id, s.status, s.hours_remaining) for s in statuses] == [
        (overdue.id, DeadlineState.OVERDUE, -1.1),
        (urgent.id, DeadlineState.URGENT, 5.5),
        (upcoming.id, DeadlineState.UPCOMING, 30.0),
    ]

    urgent_only = await services.deadlines.get_urgent_assignments()
    assert [s.assignment_id for s in urgent_only] == [overdue.id, urgent.id]


@pytest.mark.asyncio
async def test_extend_deadline(services, factory, db, submission, reviewer):
    assignment = await factory.assignment(submission, reviewer, NOW + timedelta(hours=2))

    extended = await services.deadlines.extend_deadline(assignment.id, 24, "Reviewer was travelling")

    assert extended is True
    stored = await factory.get_assignment(assignment.id)
    assert stored.deadline == NOW + timedelta(hours=26)

    entries = await audit_actions(db)
    assert [e.action for e in entries] == ["REVIEW_DEADLINE_EXTENDED"]
    assert entries[0].details["reason"] == "Reviewer was travelling"

    notifications = await factory.notifications_for(reviewer.id, NotificationType.DEADLINE_EXTENDED)
    assert len(notifications) == 1


@pytest.mark.asyncio
async def test_extend_deadline_refusals(services, factory, submission, reviewer):
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=3), AssignmentStatus.MISSED
    )
    open_assignment = await factory.assignment(submission, reviewer, NOW + timedelta(hours=3))

    assert await services.deadlines.extend_deadline(9999, 12, "unknown") is False
    assert await services.deadlines.extend_deadline(missed.id, 12, "too late") is False
    assert await services.deadlines.extend_deadline(open_assignment.id, 0, "nothing") is False
    assert await services.deadlines.extend_deadline(open_assignment.id, -4, "backwards") is False

    stored = await factory.get_assignment(open_assignment.id)
    assert stored.deadline == NOW + timedelta(hours=3)


@pytest.mark.asyncio
async def test_reviewer_is_never_handed_the_same_submission_twice(
    services, factory, clock, submission, reviewer
):
    """A missed, B took over and missed too; A must not get the submission back."""
    second = await factory.user()
    first_row = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=30), AssignmentStatus.MISSED
    )

    result = await services.deadlines.process_deadlines()
    assert result.reassignments == 1

    clock.advance(hours=50)
    result = await services.deadlines.process_deadlines()
    assert result.penalties == 1
    assert (await factory.get_user(second.id)).missed_reviews == 1

    clock.advance(hours=25)
    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 0
    assert result.errors == []
    rows = await factory.assignments_for(submission.id)
    assert [(row.reviewer_id, row.status) for row in rows] == [
        (reviewer.id, AssignmentStatus.REASSIGNED),
        (second.id, AssignmentStatus.MISSED),
    ]

    third = await factory.user()
    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 1
    rows = await factory.assignments_for(submission.id)
    assert [row.reviewer_id for row in rows] == [reviewer.id, second.id, third.id]
    assert rows[0].id == first_row.id
    assert rows[-1].status == AssignmentStatus.PENDING


@pytest.mark.asyncio
async def test_transient_ledger_failure_rolls_back_and_retries(services, factory, submission, reviewer):
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=2))
    ledger = services.deadlines.ledger
    original = ledger.record_xp_transaction
    attempts = []

    async def flaky_record(*args, **kwargs):
        attempts.append(kwargs.get("source_id"))
        if len(attempts) == 1:
            raise ConnectionError("connection reset")
        return await original(*args, **kwargs)

    ledger.record_xp_transaction = flaky_record

    result = await services.deadlines.process_deadlines()

    assert result.errors == []
    assert result.penalties == 1
    assert attempts == [str(submission.id), str(submission.id)]
    assert (await factory.get_assignment(assignment.id)).status == AssignmentStatus.MISSED

    user = await factory.get_user(reviewer.id)
    assert user.missed_reviews == 1
    assert user.total_xp == 190
    assert len(await factory.penalties_for(reviewer.id)) == 1


@pytest.mark.asyncio
async def test_failed_swap_leaves_no_double_assignment(services, factory, submission, reviewer):
    replacement = await factory.user()
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=30), AssignmentStatus.MISSED
    )
    writer = services.pool.writer
    original = writer.refresh_review_count

    async def broken_refresh(session, submission_id):
        raise RuntimeError("review count unavailable")

    writer.refresh_review_count = broken_refresh

    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 0
    assert len(result.errors) == 1
    assert result.errors[0].endswith("review count unavailable")
    rows = await factory.assignments_for(submission.id)
    assert [(row.id, row.status) for row in rows] == [(missed.id, AssignmentStatus.MISSED)]

    writer.refresh_review_count = original
    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 1
    assert result.errors == []
    rows = await factory.assignments_for(submission.id)
    assert len(rows) == 2
    assert rows[0].status == AssignmentStatus.REASSIGNED
    assert rows[1].reviewer_id == replacement.id
    assert (await factory.get_submission(submission.id)).review_count == 1


class UnavailableDatabase:
    def transaction(self):
        raise RuntimeError("audit database unavailable")


@pytest.mark.asyncio
async def test_audit_failure_does_not_undo_reassignment(services, factory, submission, reviewer):
    await factory.user()
    missed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=30), AssignmentStatus.MISSED
    )
    services.deadlines.audit.db = UnavailableDatabase()

    assert await services.deadlines.audit.log_admin_action("TEST", "review_assignment", "1") is False

    result = await services.deadlines.process_deadlines()

    assert result.reassignments == 1
    assert result.errors == []
    assert (await factory.get_assignment(missed.id)).status == AssignmentStatus.REASSIGNED


@pytest.mark.asyncio
async def test_reshuffle_releases_open_assignment_without_penalty(
    services, factory, db, submission, reviewer
):
    replacement = await factory.user()
    assignment = await factory.assignment(submission, reviewer, NOW + timedelta(hours=24))

    result = await services.deadlines.reshuffle_assignment(assignment.id, reason="reviewer on leave")

    assert result.success
    assert not result.penalty_applied
    assert result.previous_reviewer_id == reviewer.id
    assert result.candidate_reviewer_id == replacement.id
    assert not result.needs_manual_follow_up

    rows = await factory.assignments_for(submission.id)
    assert [(row.reviewer_id, row.status) for row in rows] == [
        (reviewer.id, AssignmentStatus.REASSIGNED),
        (replacement.id, AssignmentStatus.PENDING),
    ]
    assert rows[1].id == result.new_assignment_id
    assert await factory.penalties_for(reviewer.id) == []
    assert len(await factory.notifications_for(replacement.id, NotificationType.REVIEW_ASSIGNED)) == 1

    entries = await audit_actions(db)
    assert [entry.action for entry in entries] == ["REVIEW_RESHUFFLE"]
    assert entries[0].details["reason"] == "reviewer on leave"
    assert entries[0].details["newReviewerIds"] == [replacement.id]


@pytest.mark.asyncio
async def test_reshuffle_of_overdue_assignment_applies_penalty(services, factory, submission, reviewer):
    await factory.user()
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=2))

    result = await services.deadlines.reshuffle_assignment(assignment.id)

    assert result.success
    assert result.penalty_applied
    assert (await factory.get_assignment(assignment.id)).status == AssignmentStatus.REASSIGNED
    assert (await factory.get_user(reviewer.id)).missed_reviews == 1
    assert len(await factory.penalties_for(reviewer.id)) == 1


@pytest.mark.asyncio
async def test_reshuffle_dry_run_changes_nothing(services, factory, db, submission, reviewer):
    replacement = await factory.user()
    assignment = await factory.assignment(submission, reviewer, NOW - timedelta(hours=2))

    result = await services.deadlines.reshuffle_assignment(assignment.id, dry_run=True)

    assert result.success
    assert result.dry_run
    assert result.candidate_reviewer_id == replacement.id
    assert result.new_assignment_id is None
    assert not result.penalty_applied

    rows = await factory.assignments_for(submission.id)
    assert [(row.id, row.status) for row in rows] == [(assignment.id, AssignmentStatus.PENDING)]
    assert (await factory.get_user(reviewer.id)).missed_reviews == 0
    assert await audit_actions(db) == []


@pytest.mark.asyncio
async def test_reshuffle_refusals(services, factory, submission, reviewer):
    await factory.user()
    completed = await factory.assignment(
        submission, reviewer, NOW - timedelta(hours=5), AssignmentStatus.COMPLETED
    )

    unknown = await services.deadlines.reshuffle_assignment(9999)
    assert not unknown.success
    assert unknown.reason == ReshuffleFailureReason.NOT_FOUND
    assert not unknown.needs_manual_follow_up

    done = await services.deadlines.reshuffle_assignment(completed.id)
    assert not done.success
    assert done.reason == ReshuffleFailureReason.ALREADY_PROCESSED
    assert (await factory.get_assignment(completed.id)).status == AssignmentStatus.COMPLETED


@pytest.mark.asyncio
async def test_reshuffle_without_replacement_keeps_reviewer(services, factory, db, submission, reviewer):
    assignment = await factory.assignment(submission, reviewer, NOW + timedelta(hours=24))

    result = await services.deadlines.reshuffle_assignment(assignment.id)

    assert not result.success
    assert result.reason == ReshuffleFailureReason.NO_REPLACEMENT_AVAILABLE
    assert result.needs_manual_follow_up
    assert (await factory.get_assignment(assignment.id)).status == AssignmentStatus.PENDING
    assert len(await factory.assignments_for(submission.id)) == 1
    assert await audit_actions(db) == []


@pytest.mark.asyncio
async def test_reshuffle_submission(services, factory, db, submission, reviewer):
    stalled = await factory.user()
    finished = await factory.user()
    fresh = [await factory.user(), await factory.user()]
    await factory.assignment(submission, reviewer, NOW + timedelta(hours=24))
    await factory.assignment(submission, stalled, NOW - timedelta(hours=30), AssignmentStatus.MISSED)
    await factory.assignment(
        submission, finished, NOW - timedelta(hours=1), AssignmentStatus.COMPLETED
    )

    bulk = await services.deadlines.reshuffle_submission(submission.id, reason="rebalance")

    assert bulk.total_processed == 2
    assert bulk.reshuffled == 2
    assert {result.candidate_reviewer_id for result in bulk.results} == {user.id for user in fresh}

    rows = await factory.assignments_for(submission.id)
    pending = [row.reviewer_id for row in rows if row.status == AssignmentStatus.PENDING]
    assert sorted(pending) == sorted(user.id for user in fresh)

    actions = [entry.action for entry in await audit_actions(db)]
    assert actions == ["REVIEW_RESHUFFLE", "REVIEW_RESHUFFLE", "REVIEW_BULK_RESHUFFLE"]


@pytest.mark.asyncio
async def test_reshuffle_submission_reports_shortfall(services, factory, db, submission, reviewer):
    other = await factory.user()
    await factory.assignment(submission, reviewer, NOW + timedelta(hours=24))
    await factory.assignment(submission, other, NOW + timedelta(hours=24))
    await factory.user()

    bulk = await services.deadlines.reshuffle_submission(submission.id, dry_run=True)

    assert bulk.dry_run
    assert bulk.total_processed == 2
    assert bulk.reshuffled == 2
    assert await audit_actions(db) == []

    bulk = await services.deadlines.reshuffle_submission(submission.id)

    assert bulk.reshuffled == 1
    assert [result.reason for result in bulk.results] == [
        None,
        ReshuffleFailureReason.NO_REPLACEMENT_AVAILABLE,
    ]
