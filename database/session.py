"""
Async SQLAlchemy engine / session factory for PostgreSQL.

The engine is created on first use so that modules importing the stores
(and the test-suite) do not open a connection pool at import time.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator, AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import config

SessionFactory = Callable[[], AsyncSession]


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    return create_async_engine(
        config.database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


def async_session_factory() -> AsyncSession:
    """Open a new session bound to the shared engine."""
    return get_session_factory()()


@asynccontextmanager
async def session_scope(
    db_session: Optional[AsyncSession] = None,
    factory: SessionFactory = async_session_factory,
) -> AsyncIterator[AsyncSession]:
    """
    Yield *db_session* untouched, or a private session that is committed on
    success and rolled back on error.

    Callers that pass their own session own its transaction; we only flush.
    """
    if db_session is not None:
        yield db_session
        await db_session.flush()
        return

    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency function — use in FastAPI `Depends(get_db_session)`."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create any missing tables (development convenience, no migrations)."""
    from database.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
