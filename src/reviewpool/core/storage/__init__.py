"""Persistence layer: engine, sessions and shared column types."""
from .database import Base, Database, UTCDateTime, get_db, init_db

__all__ = [
    "Base",
    "Database",
    "UTCDateTime",
    "get_db",
    "init_db",
]
