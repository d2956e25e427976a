"""Typed view over the reviewer preferences JSON blob."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ReviewerPreferences(BaseModel):
    """Reviewer-related preferences stored on the user record.

    Stored keys are ``reviewerOptOut``, ``reviewerOptOutUntil`` and
    ``reviewTaskTypes``.
    """
    opted_out: bool = Field(default=False, description="Reviewer opted out of new assignments")
    opted_out_until: Optional[datetime] = Field(
        default=None, description="Opt-out expires at this instant"
    )
    task_types: list[str] = Field(
        default_factory=list, description="Task types the reviewer accepts (empty = all)"
    )

    @classmethod
    def from_raw(cls, raw: Any) -> "ReviewerPreferences":
        """Parse whatever is stored in the preferences column.

        Unreadable values produce the defaults, i.e. a reviewer who has not
        opted out.
        """
        if not raw:
            return cls()

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                logger.warning(f"Failed to parse reviewer preferences JSON: {e}")
                return cls()

        if not isinstance(raw, dict):
            return cls()

        task_types = raw.get("reviewTaskTypes") or []
        if not isinstance(task_types, list):
            task_types = []

        return cls(
            opted_out=raw.get("reviewerOptOut") is True,
            opted_out_until=_parse_timestamp(raw.get("reviewerOptOutUntil")),
            task_types=[str(t) for t in task_types],
        )

    def is_opted_out(self, now: datetime) -> bool:
        """An opt-out-until timestamp, when present, decides on its own."""
        if self.opted_out_until is not None:
            return self.opted_out_until > now
        return self.opted_out


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
