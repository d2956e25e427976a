"""Exceptions raised inside the assignment and deadline engine."""


class ReviewpoolError(Exception):
    """Base class for engine errors."""


class InsufficientReviewersError(ReviewpoolError):
    """Fewer eligible reviewers than required and partial assignment is off."""

    def __init__(self, found: int, required: int):
        self.found = found
        self.required = required
        self.shortfall = required - found
        super().__init__(
            f"Insufficient reviewers available. Found {found}, need {required} "
            f"(short {self.shortfall})"
        )


class DuplicateTransactionError(ReviewpoolError):
    """A ledger entry with the same (user, type, source) already exists."""

    def __init__(self, user_id: int, transaction_type: str, source_id: str):
        self.user_id = user_id
        self.transaction_type = transaction_type
        self.source_id = source_id
        super().__init__(
            f"{transaction_type} transaction for user {user_id} "
            f"and source {source_id} already recorded"
        )


class InvalidTransitionError(ReviewpoolError):
    """An assignment status change outside the allowed state machine."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition assignment from {current} to {target}")
