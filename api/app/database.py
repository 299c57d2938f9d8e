"""
Async SQLAlchemy database setup and session management.

Provides async engine, session factory, and database dependency for FastAPI.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from app.config import Settings, get_settings
from app.models.base import Base

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "DbSession",
    "configure_sqlite",
    "create_engine",
    "create_session_factory",
    "get_db",
]


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make SQLite behave like the production database for our workload.

    The sqlite3 driver defers BEGIN until the first DML statement, which breaks
    SAVEPOINT handling used for per-alert isolation. We emit BEGIN ourselves and
    enforce foreign keys on every connection.

    Source: https://docs.sqlalchemy.org/en/20/dialects/sqlite.html#serializable-isolation-savepoints-transactional-ddl
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine.

    When PgBouncer is enabled, we use NullPool to let PgBouncer handle
    all connection pooling. Statement caching is disabled because PgBouncer
    in transaction mode doesn't support persistent prepared statements.

    Args:
        settings: Application settings containing database URL.

    Returns:
        AsyncEngine: Configured async database engine.
    """
    if settings.is_sqlite:
        engine = create_async_engine(
            settings.async_database_url,
            echo=settings.debug,
            poolclass=StaticPool if ":memory:" in settings.database_url else NullPool,
            connect_args={"check_same_thread": False},
        )
        configure_sqlite(engine)
        return engine

    if settings.pgbouncer_enabled:
        return create_async_engine(
            settings.async_database_url,
            echo=settings.debug,
            poolclass=NullPool,
            connect_args={
                "statement_cache_size": 0,
                "prepared_statement_cache_size": 0,
                "server_settings": {
                    "application_name": "alertcase-api",
                },
            },
        )

    return create_async_engine(
        settings.async_database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create an async session factory.

    Args:
        engine: The async SQLAlchemy engine.

    Returns:
        async_sessionmaker: Factory for creating async database sessions.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create engine and session factory using default settings
_engine = create_engine(get_settings())
AsyncSessionLocal = create_session_factory(_engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async database session.

    The session is committed when the request handler returns and rolled
    back if it raises, so one request maps to one transaction.

    Yields:
        AsyncSession: An async database session.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Type alias for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
