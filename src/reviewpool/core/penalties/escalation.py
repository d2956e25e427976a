"""Missed-review penalties and threshold escalation."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..integrations.base import LedgerService
from ..models import TransactionType
from ..storage.repositories import UserRepository

logger = logging.getLogger(__name__)

MISSED_REVIEW_PENALTY_XP = -10


@dataclass(frozen=True)
class ThresholdSanction:
    """What happens when the lifetime missed count reaches ``threshold``.

    ``pause_days`` of None together with ``permanent`` means a ban; the
    pause timestamp is left alone in that case.
    """
    threshold: int
    xp_penalty: int
    pause_days: Optional[int] = None
    permanent: bool = False

    @property
    def description(self) -> str:
        if self.permanent:
            return f"Permanent review ban after {self.threshold} missed reviews"
        return f"{self.pause_days}-day review pause after {self.threshold} missed reviews"


THRESHOLD_SANCTIONS = (
    ThresholdSanction(threshold=4, xp_penalty=-100, pause_days=14),
    ThresholdSanction(threshold=7, xp_penalty=-200, pause_days=28),
    ThresholdSanction(threshold=10, xp_penalty=-500, permanent=True),
)


def sanction_for(missed_reviews: int) -> Optional[ThresholdSanction]:
    """Sanction triggered by reaching exactly ``missed_reviews``, if any."""
    for sanction in THRESHOLD_SANCTIONS:
        if sanction.threshold == missed_reviews:
            return sanction
    return None


@dataclass
class PenaltyOutcome:
    """Result of penalizing one missed assignment."""
    missed_reviews: int
    xp_delta: int
    sanction: Optional[ThresholdSanction] = None


class PenaltyEscalator:
    """Applies the flat missed-review penalty and any threshold sanction.

    Everything happens in the caller's session, so the counter increment,
    the ledger entries and the clamp commit or roll back together.
    """

    def __init__(self, ledger: LedgerService, missed_review_penalty_xp: int = MISSED_REVIEW_PENALTY_XP):
        self.ledger = ledger
        self.missed_review_penalty_xp = missed_review_penalty_xp

    async def penalize_missed_review(
        self,
        session: AsyncSession,
        reviewer_id: int,
        submission_id: int,
        now: datetime,
    ) -> Optional[PenaltyOutcome]:
        """Count one missed review against ``reviewer_id``.

        The flat penalty entry is keyed by the submission, so recording it a
        second time raises DuplicateTransactionError and rolls the caller's
        transaction back.

        Returns:
            PenaltyOutcome, or None if the reviewer no longer exists
        """
        users = UserRepository(session)
        missed_reviews = await users.increment_missed_reviews(reviewer_id)
        if missed_reviews is None:
            logger.warning(f"Cannot penalize missing reviewer {reviewer_id}")
            return None

        await self.ledger.record_xp_transaction(
            session,
            reviewer_id,
            self.missed_review_penalty_xp,
            TransactionType.PENALTY,
            f"Missed review deadline for submission {submission_id}",
            source_id=str(submission_id),
        )
        xp_delta = self.missed_review_penalty_xp

        sanction = sanction_for(missed_reviews)
        if sanction is not None:
            await self.apply_sanction(session, reviewer_id, sanction, now)
            xp_delta += sanction.xp_penalty

        await users.clamp_negative_xp(reviewer_id)

        return PenaltyOutcome(missed_reviews=missed_reviews, xp_delta=xp_delta, sanction=sanction)

    async def apply_sanction(
        self,
        session: AsyncSession,
        reviewer_id: int,
        sanction: ThresholdSanction,
        now: datetime,
    ) -> None:
        users = UserRepository(session)

        if sanction.permanent:
            await users.ban_from_reviewing(reviewer_id)
        elif sanction.pause_days is not None:
            await users.pause_reviewing(reviewer_id, now + timedelta(days=sanction.pause_days))

        # Threshold entries carry no source id: each threshold is crossed once
        await self.ledger.record_xp_transaction(
            session,
            reviewer_id,
            sanction.xp_penalty,
            TransactionType.PENALTY,
            sanction.description,
        )

        logger.warning(f"Reviewer {reviewer_id}: {sanction.description}")
