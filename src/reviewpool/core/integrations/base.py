"""Interfaces for the collaborators the engine depends on.

The engine only talks to these abstractions, so tests and other deployments
can swap in their own ledger, notification store or audit sink.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Notification, NotificationType, TransactionType, XpTransaction


class LedgerService(ABC):
    """XP ledger. Entries are also used as idempotency keys."""

    @abstractmethod
    async def record_xp_transaction(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        transaction_type: TransactionType,
        description: str,
        source_id: Optional[str] = None,
    ) -> XpTransaction:
        """Record an XP delta and apply it to the user's totals.

        Args:
            session: Session of the surrounding unit of work
            user_id: User receiving the delta
            amount: Signed XP delta
            transaction_type: Kind of transaction
            description: Human readable reason
            source_id: Optional id of the object that caused the delta

        Returns:
            The recorded transaction

        Raises:
            DuplicateTransactionError: If (user_id, type, source_id) is already recorded
        """
        pass

    @abstractmethod
    async def has_transaction(
        self,
        session: AsyncSession,
        user_id: int,
        transaction_type: TransactionType,
        source_id: str,
    ) -> bool:
        """Check whether a transaction of this type exists for (user, source)."""
        pass


class NotificationStore(ABC):
    """Insert-and-query store for user notifications."""

    @abstractmethod
    async def exists(
        self,
        session: AsyncSession,
        user_id: int,
        notification_type: NotificationType,
        dedupe_key: str,
    ) -> bool:
        """Check whether a notification with this dedupe key was already written."""
        pass

    @abstractmethod
    async def create(
        self,
        session: AsyncSession,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
    ) -> Optional[Notification]:
        """Write a notification.

        Returns:
            The notification, or None if one with the same dedupe key exists
        """
        pass


class AuditLogger(ABC):
    """Best-effort admin audit trail."""

    @abstractmethod
    async def log_admin_action(
        self,
        action: str,
        target_type: str,
        target_id: str,
        details: Optional[Dict[str, Any]] = None,
        admin_id: str = "system",
    ) -> bool:
        """Record an action. Never raises.

        Returns:
            True if the entry was stored
        """
        pass
