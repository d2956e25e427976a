"""Shared fixtures for the Reviewpool test suite."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import select

from reviewpool.core.config.settings import ReviewpoolConfig
from reviewpool.core.models import (
    AssignmentStatus,
    Notification,
    NotificationType,
    ReviewAssignment,
    Submission,
    TransactionType,
    User,
    UserRole,
    XpTransaction,
)
from reviewpool.core.services import create_services
from reviewpool.core.storage.database import Database

# A Wednesday, so +48h stays on a weekday
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Factory:
    """Creates and reads rows, each call in its own transaction."""

    def __init__(self, db: Database):
        self.db = db
        self._users = 0

    async def user(
        self,
        role: UserRole = UserRole.REVIEWER,
        total_xp: int = 100,
        **fields,
    ) -> User:
        self._users += 1
        fields.setdefault("username", f"reviewer{self._users}")
        fields.setdefault("email", f"user{self._users}@example.com")
        user = User(role=role, total_xp=total_xp, **fields)
        async with self.db.transaction() as session:
            session.add(user)
        return user

    async def submission(self, author: User, **fields) -> Submission:
        submission = Submission(user_id=author.id, url="https://example.com/post", **fields)
        async with self.db.transaction() as session:
            session.add(submission)
        return submission

    async def assignment(
        self,
        submission: Submission,
        reviewer: User,
        deadline: datetime,
        status: AssignmentStatus = AssignmentStatus.PENDING,
    ) -> ReviewAssignment:
        assignment = ReviewAssignment(
            submission_id=submission.id,
            reviewer_id=reviewer.id,
            deadline=deadline,
            status=status,
            assigned_at=deadline - timedelta(hours=48),
        )
        async with self.db.transaction() as session:
            session.add(assignment)
        return assignment

    async def busy(self, reviewer: User, count: int, deadline: datetime) -> None:
        """Give ``reviewer`` ``count`` PENDING assignments on an unrelated submission."""
        author = await self.user(role=UserRole.USER)
        for _ in range(count):
            submission = await self.submission(author)
            await self.assignment(submission, reviewer, deadline)

    async def get_user(self, user_id: int) -> User:
        async with self.db.session() as session:
            return await session.get(User, user_id)

    async def get_submission(self, submission_id: int) -> Submission:
        async with self.db.session() as session:
            return await session.get(Submission, submission_id)

    async def get_assignment(self, assignment_id: int) -> ReviewAssignment:
        async with self.db.session() as session:
            return await session.get(ReviewAssignment, assignment_id)

    async def assignments_for(self, submission_id: int) -> list[ReviewAssignment]:
        async with self.db.session() as session:
            result = await session.execute(
                select(ReviewAssignment)
                .where(ReviewAssignment.submission_id == submission_id)
                .order_by(ReviewAssignment.id)
            )
            return list(result.scalars().all())

    async def penalties_for(self, user_id: int) -> list[XpTransaction]:
        async with self.db.session() as session:
            result = await session.execute(
                select(XpTransaction)
                .where(XpTransaction.user_id == user_id)
                .where(XpTransaction.type == TransactionType.PENALTY)
                .order_by(XpTransaction.id)
            )
            return list(result.scalars().all())

    async def notifications_for(
        self, user_id: int, notification_type: Optional[NotificationType] = None
    ) -> list[Notification]:
        async with self.db.session() as session:
            query = select(Notification).where(Notification.user_id == user_id)
            if notification_type is not None:
                query = query.where(Notification.type == notification_type)
            result = await session.execute(query.order_by(Notification.id))
            return list(result.scalars().all())


@pytest.fixture
def config():
    """Test configuration backed by an in-memory database."""
    return ReviewpoolConfig(
        db_path=":memory:",
        cron_secret="test-secret",
        retry_initial_delay=0,
    )


@pytest.fixture
async def db(config: ReviewpoolConfig):
    """Create test database."""
    db = Database(config.get_database_url())
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def services(db: Database, config: ReviewpoolConfig, clock: FixedClock):
    return create_services(db, config, clock=clock)


@pytest.fixture
def factory(db: Database):
    return Factory(db)
