"""SQL-backed admin audit log."""
import logging
from typing import Any, Dict, Optional

from ..models import AdminAuditLog
from ..storage.database import Database
from .base import AuditLogger

logger = logging.getLogger(__name__)


class SqlAuditLogger(AuditLogger):
    """Audit entries written in their own transaction.

    A failure here is logged and swallowed so the caller's work stands.
    """

    def __init__(self, db: Database):
        self.db = db

    async def log_admin_action(
        self,
        action: str,
        target_type: str,
        target_id: str,
        details: Optional[Dict[str, Any]] = None,
        admin_id: str = "system",
    ) -> bool:
        try:
            async with self.db.transaction() as session:
                session.add(
                    AdminAuditLog(
                        admin_id=admin_id,
                        action=action,
                        target_type=target_type,
                        target_id=str(target_id),
                        details=details,
                    )
                )
            return True
        except Exception as e:
            logger.warning(f"Failed to write audit entry {action} for {target_type} {target_id}: {e}")
            return False
