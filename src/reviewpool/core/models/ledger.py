"""XP ledger entries."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from ..storage.database import Base, UTCDateTime


class TransactionType(str, Enum):
    """Kind of XP movement."""
    SUBMISSION_REWARD = "SUBMISSION_REWARD"
    REVIEW_REWARD = "REVIEW_REWARD"
    PENALTY = "PENALTY"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class XpTransaction(Base):
    """One XP delta recorded against a user.

    (user_id, type, source_id) is unique so a per-source penalty can only be
    inserted once. NULL source ids never collide.
    """

    __tablename__ = "xp_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "type", "source_id", name="uq_xp_transactions_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, native_enum=False, length=32), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<XpTransaction(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, type='{self.type.value}')>"
        )
