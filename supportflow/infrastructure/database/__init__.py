"""
Database Infrastructure
=======================

Engine and session factory for the knowledge and support tables.

PostgreSQL through asyncpg in deployments; SQLite through aiosqlite for
local runs and tests. Repositories receive the session factory and open
one short transaction per operation, so every document, job and event
status write is committed before the call returns.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from supportflow.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by the knowledge and support models."""
    pass


# Owned by the application lifespan (or a test fixture)
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory handed to the SQLAlchemy repositories.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session factory.

    Args:
        database_url: Override for settings.database_url (tests pass a
            sqlite+aiosqlite URL)
    """
    global _engine, _session_maker

    # asyncpg expects ssl= rather than libpq's sslmode=
    url = (database_url or settings.database_url).replace("sslmode=", "ssl=")
    is_sqlite = url.startswith("sqlite")

    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}
    if not is_sqlite:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    _engine = create_async_engine(url, **engine_kwargs)
    if is_sqlite:
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Entities are mapped to dataclasses after commit
        autoflush=False,
    )

    return _engine


async def close_database() -> None:
    """Dispose of pooled connections on shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One transaction: commits on clean exit, rolls back and re-raises otherwise.

    Usage:
        async with get_session_context() as session:
            await session.execute(text("SELECT 1"))
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    """Trivial round trip for the health endpoint."""
    async with get_session_context() as session:
        await session.execute(text("SELECT 1"))
    return True


async def create_tables() -> None:
    """
    Create the knowledge and support tables if missing.

    Used at startup outside production and by the repository tests.
    """
    # Register every model on Base.metadata before create_all
    import supportflow.knowledge.infrastructure.models  # noqa: F401
    import supportflow.support.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
