"""Transactional units of work with transient-error retry."""
import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from ..retry import BackoffPolicy, with_retry
from .database import Database

T = TypeVar("T")


class UnitOfWork:
    """Runs a callable inside a fresh transaction, retrying transient failures.

    Each attempt gets its own session, so a failed attempt is rolled back
    completely before the next one starts.
    """

    def __init__(
        self,
        db: Database,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.policy = policy or BackoffPolicy()
        self.sleep = sleep

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        label: str = "unit of work",
    ) -> T:
        async def attempt() -> T:
            async with self.db.transaction() as session:
                return await work(session)

        return await with_retry(attempt, policy=self.policy, sleep=self.sleep, label=label)
