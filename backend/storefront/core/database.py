"""
Database connection management with SQLAlchemy async.
Provides session dependency injection and connection pooling.

When the database cannot be reached at startup the service keeps running on
the in-memory storage tier (see storefront.services.storage).
"""
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storefront.core.config import settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)

# Flag to track if database is available
_db_available: bool = False


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def normalize_database_url(database_url: str) -> str:
    """Select the async driver for plain postgres/sqlite URLs."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def _enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on SQLite."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: Optional[str] = None, **engine_options: Any) -> AsyncEngine:
    """Create async database engine with proper configuration."""
    url = normalize_database_url(database_url or settings.database_url)

    sanitized = re.sub(r":([^:@/]+)@", ":***@", url)
    logger.info("Creating database engine", url=sanitized)

    options: dict[str, Any] = {"echo": settings.database_echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    options.update(engine_options)
    async_engine = create_async_engine(url, **options)
    if url.startswith("sqlite"):
        _enable_sqlite_savepoints(async_engine)
    return async_engine


# Global engine and session factory
engine = create_engine()
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_session() -> AsyncGenerator[Optional[AsyncSession], None]:
    """
    Dependency that provides a database session with automatic cleanup.

    Yields None if the database is not available, in which case callers
    fall back to the in-memory storage tier.
    """
    if not _db_available:
        yield None
        return

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Type alias for dependency injection
DbSession = Annotated[Optional[AsyncSession], Depends(get_db_session)]


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions outside of request context."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database tables.

    If the connection fails the app continues on the in-memory tier.
    """
    global _db_available
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        _db_available = True
        logger.info("Database initialized")
    except Exception as e:
        _db_available = False
        logger.warning(
            "Database connection failed - running on in-memory storage",
            error=str(e),
        )


def is_db_available() -> bool:
    """Check if database is available."""
    return _db_available


async def close_db() -> None:
    """Close database connections."""
    if _db_available:
        await engine.dispose()
        logger.info("Database connections closed")
    else:
        logger.info("No database connections to close (in-memory storage)")
