"""Tests for repository pattern implementations."""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from reviewpool.core.errors import InvalidTransitionError
from reviewpool.core.models import (
    AssignmentStatus,
    ReviewAssignment,
    Submission,
    SubmissionStatus,
    User,
    UserRole,
)
from reviewpool.core.storage.database import Database, get_db, init_db
from reviewpool.core.storage.repositories import (
    AssignmentRepository,
    SubmissionRepository,
    UserRepository,
)

from conftest import NOW


@pytest.fixture
async def session(db: Database):
    """Create test session."""
    async with db.session() as session:
        yield session


@pytest.fixture
async def user_repo(session: AsyncSession):
    """Create user repository."""
    return UserRepository(session)


@pytest.fixture
async def submission_repo(session: AsyncSession):
    """Create submission repository."""
    return SubmissionRepository(session)


@pytest.fixture
async def assignment_repo(session: AsyncSession):
    """Create assignment repository."""
    return AssignmentRepository(session)


async def make_assignment(
    repo: AssignmentRepository,
    submission: Submission,
    reviewer: User,
    status: AssignmentStatus = AssignmentStatus.PENDING,
    deadline=NOW,
) -> ReviewAssignment:
    return await repo.create(
        ReviewAssignment(
            submission_id=submission.id,
            reviewer_id=reviewer.id,
            deadline=deadline,
            status=status,
            assigned_at=NOW,
        )
    )


@pytest.fixture
async def author(user_repo: UserRepository):
    return await user_repo.create(User(email="author@example.com", role=UserRole.USER))


@pytest.fixture
async def reviewer(user_repo: UserRepository):
    return await user_repo.create(
        User(email="reviewer@example.com", role=UserRole.REVIEWER, total_xp=80)
    )


@pytest.fixture
async def submission(submission_repo: SubmissionRepository, author: User):
    return await submission_repo.create(Submission(user_id=author.id, task_types=["A"]))


@pytest.mark.asyncio
async def test_list_by_roles(user_repo: UserRepository, author, reviewer):
    """Only reviewer roles come back, ordered by id."""
    admin = await user_repo.create(User(email="admin@example.com", role=UserRole.ADMIN))

    users = await user_repo.list_by_roles([UserRole.REVIEWER, UserRole.ADMIN])
    assert [u.id for u in users] == [reviewer.id, admin.id]

    users = await user_repo.list_by_roles([UserRole.REVIEWER, UserRole.ADMIN], exclude_ids=[admin.id])
    assert [u.id for u in users] == [reviewer.id]


@pytest.mark.asyncio
async def test_increment_missed_reviews(user_repo: UserRepository, reviewer):
    """The counter is incremented in SQL and the new value returned."""
    assert await user_repo.increment_missed_reviews(reviewer.id) == 1
    assert await user_repo.increment_missed_reviews(reviewer.id) == 2
    assert await user_repo.increment_missed_reviews(9999) is None


@pytest.mark.asyncio
async def test_clamp_negative_xp(user_repo: UserRepository, session: AsyncSession, reviewer):
    """Each XP field is clamped on its own."""
    await user_repo.apply_xp_delta(reviewer.id, -100)
    await user_repo.clamp_negative_xp(reviewer.id)

    await session.refresh(reviewer)
    assert reviewer.total_xp == 0
    assert reviewer.current_week_xp == 0


@pytest.mark.asyncio
async def test_mark_under_review(submission_repo: SubmissionRepository, session, submission):
    """Submission moves to peer review with its deadline and count."""
    deadline = NOW + timedelta(hours=48)
    assert await submission_repo.mark_under_review(submission.id, deadline, 3)
    assert not await submission_repo.mark_under_review(9999, deadline, 3)

    await session.refresh(submission)
    assert submission.status == SubmissionStatus.UNDER_PEER_REVIEW
    assert submission.review_deadline == deadline
    assert submission.review_count == 3


@pytest.mark.asyncio
async def test_count_active_by_reviewer(assignment_repo, submission, reviewer):
    """Only PENDING and IN_PROGRESS count toward workload."""
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.PENDING)
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.IN_PROGRESS)
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.MISSED)
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.COMPLETED)

    assert await assignment_repo.count_active_by_reviewer([reviewer.id]) == {reviewer.id: 2}
    assert await assignment_repo.count_active_by_reviewer([]) == {}


@pytest.mark.asyncio
async def test_live_and_historical_reviewers(user_repo, assignment_repo, submission, reviewer):
    """Reassigned rows no longer count as live but stay in the reviewer history."""
    other = await user_repo.create(User(email="other@example.com", role=UserRole.REVIEWER))
    third = await user_repo.create(User(email="third@example.com", role=UserRole.REVIEWER))
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.REASSIGNED)
    await make_assignment(assignment_repo, submission, other, AssignmentStatus.COMPLETED)
    await make_assignment(assignment_repo, submission, third, AssignmentStatus.MISSED)

    assert await assignment_repo.live_reviewer_ids(submission.id) == [other.id, third.id]
    assert await assignment_repo.count_live(submission.id) == 2
    assert await assignment_repo.all_reviewer_ids(submission.id) == {reviewer.id, other.id, third.id}
    assert await assignment_repo.all_reviewer_ids(9999) == set()


@pytest.mark.asyncio
async def test_list_by_status_orders_by_deadline(assignment_repo, submission, reviewer):
    late = await make_assignment(assignment_repo, submission, reviewer, deadline=NOW + timedelta(hours=5))
    early = await make_assignment(assignment_repo, submission, reviewer, deadline=NOW + timedelta(hours=1))
    await make_assignment(assignment_repo, submission, reviewer, AssignmentStatus.COMPLETED)

    assignments = await assignment_repo.list_by_status([AssignmentStatus.PENDING], with_relations=True)

    assert [a.id for a in assignments] == [early.id, late.id]
    assert assignments[0].submission.user_id == submission.user_id


@pytest.mark.asyncio
async def test_transition_is_conditional(assignment_repo, session, submission, reviewer):
    """A transition only applies while the row is in an expected status."""
    assignment = await make_assignment(assignment_repo, submission, reviewer)

    assert await assignment_repo.transition(
        assignment.id, AssignmentStatus.MISSED, [AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS]
    )
    assert not await assignment_repo.transition(
        assignment.id, AssignmentStatus.MISSED, [AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS]
    )

    await session.refresh(assignment)
    assert assignment.status == AssignmentStatus.MISSED


@pytest.mark.asyncio
async def test_transition_rejects_illegal_moves(assignment_repo, submission, reviewer):
    assignment = await make_assignment(assignment_repo, submission, reviewer)

    with pytest.raises(InvalidTransitionError):
        await assignment_repo.transition(
            assignment.id, AssignmentStatus.PENDING, [AssignmentStatus.MISSED]
        )

    with pytest.raises(InvalidTransitionError):
        await assignment_repo.transition(
            assignment.id, AssignmentStatus.REASSIGNED, [AssignmentStatus.COMPLETED]
        )


def test_state_machine():
    assert AssignmentStatus.PENDING.can_transition_to(AssignmentStatus.IN_PROGRESS)
    assert AssignmentStatus.MISSED.can_transition_to(AssignmentStatus.REASSIGNED)
    assert AssignmentStatus.PENDING.can_transition_to(AssignmentStatus.REASSIGNED)
    assert AssignmentStatus.IN_PROGRESS.can_transition_to(AssignmentStatus.REASSIGNED)
    assert not AssignmentStatus.MISSED.can_transition_to(AssignmentStatus.PENDING)
    assert not AssignmentStatus.PENDING.can_transition_to(AssignmentStatus.COMPLETED)
    assert not AssignmentStatus.COMPLETED.can_transition_to(AssignmentStatus.PENDING)
    assert AssignmentStatus.REASSIGNED.is_terminal
    assert not AssignmentStatus.MISSED.is_terminal


def test_default_database_instance():
    db = init_db("sqlite+aiosqlite:///:memory:")
    assert get_db() is db
