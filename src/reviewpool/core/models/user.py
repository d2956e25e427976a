"""User model - the reviewer-relevant projection of a platform account."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, reconstructor, validates

from ..schemas.preferences import ReviewerPreferences
from ..storage.database import Base, UTCDateTime


class UserRole(str, Enum):
    """Platform roles."""
    USER = "USER"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"


class User(Base):
    """Platform user as seen by the reviewer pool."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, native_enum=False, length=32),
        nullable=False,
        default=UserRole.USER,
        index=True,
    )
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_week_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Lifetime counter, never reset
    missed_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_paused_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    review_paused_permanently: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    preferences: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    @property
    def display_name(self) -> str:
        return self.username or self.email.split("@")[0]

    @reconstructor
    def _parse_review_preferences(self) -> None:
        self._review_preferences = ReviewerPreferences.from_raw(self.preferences)

    @validates("preferences")
    def _reset_review_preferences(self, key: str, value: Optional[dict]) -> Optional[dict]:
        self._review_preferences = None
        return value

    @property
    def review_preferences(self) -> ReviewerPreferences:
        """Typed view over the opaque preferences blob, parsed once per row."""
        if getattr(self, "_review_preferences", None) is None:
            self._review_preferences = ReviewerPreferences.from_raw(self.preferences)
        return self._review_preferences

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
