"""Workload-balanced reviewer selection."""
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import InsufficientReviewersError
from ..schemas import ReviewerCandidate

DEFAULT_MINIMUM_REVIEWERS = 3


@dataclass
class Selection:
    """Chosen reviewers plus any non-fatal warnings."""
    reviewers: list[ReviewerCandidate]
    warnings: list[str] = field(default_factory=list)


def rank_candidates(candidates: Iterable[ReviewerCandidate]) -> list[ReviewerCandidate]:
    """Least loaded first, then highest XP, then lowest id."""
    return sorted(candidates, key=lambda c: (c.active_assignments, -c.total_xp, c.id))


def select_reviewers(
    candidates: Iterable[ReviewerCandidate],
    minimum_reviewers: int = DEFAULT_MINIMUM_REVIEWERS,
    allow_partial_assignment: bool = False,
) -> Selection:
    """Pick ``minimum_reviewers`` candidates by workload and reputation.

    Args:
        candidates: Eligible reviewers in any order
        minimum_reviewers: How many reviewers the submission needs
        allow_partial_assignment: Accept fewer than required, with a warning

    Returns:
        Selection of at most ``minimum_reviewers`` reviewers

    Raises:
        InsufficientReviewersError: If no candidate exists, or too few exist
            and partial assignment is not allowed
    """
    ranked = rank_candidates(candidates)
    warnings: list[str] = []

    if len(ranked) < minimum_reviewers:
        if not ranked or not allow_partial_assignment:
            raise InsufficientReviewersError(found=len(ranked), required=minimum_reviewers)

        warnings.append(
            f"Insufficient reviewers available. Assigning {len(ranked)} of "
            f"{minimum_reviewers} requested"
        )

    return Selection(reviewers=ranked[:minimum_reviewers], warnings=warnings)
