"""Collaborator interfaces and their SQL implementations."""
from .base import AuditLogger, LedgerService, NotificationStore
from .audit import SqlAuditLogger
from .ledger import SqlLedgerService
from .notifications import SqlNotificationStore, reminder_dedupe_key

__all__ = [
    "AuditLogger",
    "LedgerService",
    "NotificationStore",
    "SqlAuditLogger",
    "SqlLedgerService",
    "SqlNotificationStore",
    "reminder_dedupe_key",
]
