"""Wiring of the engine's services and their collaborators."""
from dataclasses import dataclass
from typing import Optional

from .clock import Clock, utcnow
from .config.settings import ReviewpoolConfig
from .deadlines import DeadlineMonitorService
from .integrations import SqlAuditLogger, SqlLedgerService, SqlNotificationStore
from .penalties import PenaltyEscalator
from .pool import AssignmentWriter, ReviewerPoolService
from .retry import BackoffPolicy
from .storage.database import Database
from .storage.unit_of_work import UnitOfWork


@dataclass
class Services:
    """The public services sharing one database and one config."""
    pool: ReviewerPoolService
    deadlines: DeadlineMonitorService


def create_services(
    db: Database,
    config: ReviewpoolConfig,
    clock: Clock = utcnow,
    uow: Optional[UnitOfWork] = None,
) -> Services:
    """Build the reviewer pool and deadline monitor with SQL collaborators.

    Args:
        db: Database both services write to
        config: Pool, deadline and retry policy
        clock: Time source, pinned in tests
        uow: Unit of work override, built from the retry settings if omitted

    Returns:
        Services
    """
    uow = uow or UnitOfWork(
        db,
        BackoffPolicy(
            max_retries=config.retry_max_retries,
            initial_delay=config.retry_initial_delay,
        ),
    )
    ledger = SqlLedgerService()
    notifications = SqlNotificationStore()

    pool = ReviewerPoolService(
        uow,
        config,
        notifications,
        writer=AssignmentWriter(config.review_window_hours),
        clock=clock,
    )
    deadlines = DeadlineMonitorService(
        uow,
        config,
        pool,
        ledger,
        notifications,
        SqlAuditLogger(db),
        escalator=PenaltyEscalator(ledger, config.missed_review_penalty_xp),
        clock=clock,
    )
    return Services(pool=pool, deadlines=deadlines)
