"""Reviewer pool: eligibility, selection and assignment."""
from .eligibility import EligibilityFilter, EligibilityPolicy
from .selector import Selection, rank_candidates, select_reviewers
from .writer import AssignmentWriter, compute_review_deadline
from .service import ReviewerPoolService, start_of_week

__all__ = [
    "EligibilityFilter",
    "EligibilityPolicy",
    "Selection",
    "rank_candidates",
    "select_reviewers",
    "AssignmentWriter",
    "compute_review_deadline",
    "ReviewerPoolService",
    "start_of_week",
]
