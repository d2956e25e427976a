"""Submission model - only the fields peer review touches."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Integer, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..storage.database import Base, UTCDateTime


class SubmissionStatus(str, Enum):
    """Lifecycle of a submission."""
    PENDING = "PENDING"
    UNDER_PEER_REVIEW = "UNDER_PEER_REVIEW"
    FINALIZED = "FINALIZED"
    REJECTED = "REJECTED"


class Submission(Base):
    """Content submitted for peer review."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )  # Author, never reviews their own submission
    url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    task_types: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, native_enum=False, length=32),
        nullable=False,
        default=SubmissionStatus.PENDING,
        index=True,
    )
    review_deadline: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    # Relationships
    assignments: Mapped[list["ReviewAssignment"]] = relationship(
        "ReviewAssignment", back_populates="submission"
    )

    def __repr__(self) -> str:
        return f"<Submission(id={self.id}, user_id={self.user_id}, status='{self.status.value}')>"
