"""Missed-review penalty escalation."""
from .escalation import (
    MISSED_REVIEW_PENALTY_XP,
    THRESHOLD_SANCTIONS,
    PenaltyEscalator,
    PenaltyOutcome,
    ThresholdSanction,
    sanction_for,
)

__all__ = [
    "MISSED_REVIEW_PENALTY_XP",
    "THRESHOLD_SANCTIONS",
    "PenaltyEscalator",
    "PenaltyOutcome",
    "ThresholdSanction",
    "sanction_for",
]
