"""Async database engine, session management and shared column types."""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import DateTime, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    """Declarative base for all Reviewpool models."""


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    SQLite drops tzinfo on the way back, so naive values read from the
    driver are interpreted as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Database:
    """Owner of the async engine and session factory."""

    def __init__(self, database_url: str, echo: bool = False):
        """Create the engine for a database URL.

        Args:
            database_url: SQLAlchemy async URL (sqlite+aiosqlite or postgresql+asyncpg)
            echo: Log emitted SQL
        """
        self.database_url = database_url

        engine_kwargs: dict = {"echo": echo}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        if database_url.startswith("sqlite"):
            _enable_sqlite_savepoints(self.engine)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session. Callers commit explicitly."""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session inside a transaction that commits on success."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create_tables(self) -> None:
        """Create all tables known to the metadata."""
        # Register every mapped class before create_all
        from .. import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of the engine and its connections."""
        await self.engine.dispose()


_db: Optional[Database] = None


def init_db(database_url: str, echo: bool = False) -> Database:
    """Initialize the default database instance.

    Args:
        database_url: SQLAlchemy async URL
        echo: Log emitted SQL

    Returns:
        Database instance
    """
    global _db
    _db = Database(database_url, echo=echo)
    return _db


def get_db() -> Database:
    """Get the default database instance.

    Raises:
        RuntimeError: If init_db has not been called
    """
    if _db is None:
        raise RuntimeError("Database has not been initialized. Call init_db() first.")
    return _db


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on pysqlite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop the driver from issuing its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")
