"""Eligibility rules deciding who may review a submission."""
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..models import User
from ..schemas import ReviewerCandidate

DEFAULT_MAX_ACTIVE_ASSIGNMENTS = 5
DEFAULT_MIN_REVIEWER_XP = 50


@dataclass(frozen=True)
class EligibilityPolicy:
    """Thresholds applied to every candidate reviewer."""
    max_active_assignments: int = DEFAULT_MAX_ACTIVE_ASSIGNMENTS
    min_reviewer_xp: int = DEFAULT_MIN_REVIEWER_XP
    reviewer_roles: frozenset[str] = frozenset({"REVIEWER", "ADMIN"})
    xp_floor_exempt_roles: frozenset[str] = frozenset({"ADMIN"})
    required_task_types: frozenset[str] = field(default_factory=frozenset)


class EligibilityFilter:
    """Applies the eligibility rules to users.

    Rules are checked in a fixed order and the first failure is reported:
    author and exclusions, role, opt-out, pause or ban, workload, XP floor,
    task types.
    """

    def __init__(self, policy: EligibilityPolicy):
        self.policy = policy

    def rejection_reason(
        self,
        user: User,
        active_assignments: int,
        author_user_id: int,
        now: datetime,
        exclude_user_ids: Iterable[int] = (),
    ) -> Optional[str]:
        """Return why ``user`` cannot review, or None if they can."""
        policy = self.policy
        role = user.role.value

        if user.id == author_user_id:
            return "Cannot review own submission"

        if user.id in set(exclude_user_ids):
            return "Reviewer is excluded from this submission"

        if role not in policy.reviewer_roles:
            return "User does not have reviewer privileges"

        preferences = user.review_preferences
        if preferences.is_opted_out(now):
            return "Reviewer is temporarily unavailable"

        if user.review_paused_permanently:
            return "Reviewer is permanently banned from reviewing"

        if user.review_paused_until is not None and user.review_paused_until > now:
            return f"Reviewer is paused until {user.review_paused_until.isoformat()}"

        if active_assignments >= policy.max_active_assignments:
            return "Reviewer has too many active assignments"

        if user.total_xp < policy.min_reviewer_xp and role not in policy.xp_floor_exempt_roles:
            return f"Insufficient experience (minimum {policy.min_reviewer_xp} XP required)"

        if (
            policy.required_task_types
            and preferences.task_types
            and not policy.required_task_types.intersection(preferences.task_types)
        ):
            return "Reviewer does not cover the required task types"

        return None

    def filter(
        self,
        users: Iterable[User],
        active_counts: Mapping[int, int],
        author_user_id: int,
        now: datetime,
        exclude_user_ids: Iterable[int] = (),
    ) -> list[ReviewerCandidate]:
        """Candidates among ``users`` that pass every rule, in input order."""
        excluded = set(exclude_user_ids)
        candidates = []

        for user in users:
            active = active_counts.get(user.id, 0)
            if self.rejection_reason(user, active, author_user_id, now, excluded) is not None:
                continue
            candidates.append(to_candidate(user, active))

        return candidates


def to_candidate(user: User, active_assignments: int) -> ReviewerCandidate:
    return ReviewerCandidate(
        id=user.id,
        username=user.display_name,
        email=user.email,
        role=user.role.value,
        total_xp=user.total_xp,
        missed_reviews=user.missed_reviews,
        active_assignments=active_assignments,
        last_active_at=user.last_active_at,
    )
