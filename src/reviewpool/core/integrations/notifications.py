"""SQL-backed notification store."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Notification, NotificationType
from .base import NotificationStore

logger = logging.getLogger(__name__)


def reminder_dedupe_key(assignment_id: int, reminder_interval: float) -> str:
    """Dedupe key of the reminder for one assignment and checkpoint."""
    return f"assignment:{assignment_id}:reminder:{reminder_interval:g}"


class SqlNotificationStore(NotificationStore):
    """Notifications stored in the notifications table."""

    async def exists(
        self,
        session: AsyncSession,
        user_id: int,
        notification_type: NotificationType,
        dedupe_key: str,
    ) -> bool:
        result = await session.execute(
            select(Notification.id)
            .where(Notification.user_id == user_id)
            .where(Notification.type == notification_type)
            .where(Notification.dedupe_key == dedupe_key)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

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
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=data,
            dedupe_key=dedupe_key,
            read=False,
        )

        try:
            async with session.begin_nested():
                session.add(notification)
                await session.flush()
        except IntegrityError:
            if dedupe_key is None:
                raise
            logger.info(f"Notification {dedupe_key} for user {user_id} already exists")
            return None

        return notification
