"""
Async SQLAlchemy engine and session management.

PostgreSQL (asyncpg) in every deployed environment; SQLite (aiosqlite) is
accepted for local runs and the test suite, which share no connection pool.
Sessions never expire on commit: the worker reads rows after committing its claim.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker | None = None


class Base(DeclarativeBase):
    pass


def engine_options(database_url: str, pool_size: int, max_overflow: int, echo: bool = False) -> dict[str, Any]:
    """Keyword arguments for create_async_engine, by driver."""
    options: dict[str, Any] = {"echo": echo}
    if make_url(database_url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=pool_size,
        max_overflow=max_overflow,
        # Scheduler calls can be minutes apart; drop connections the server closed
        pool_pre_ping=True,
    )
    return options


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from salonbooker.config import get_settings
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            **engine_options(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.app_env == "development",
            ),
        )
        logger.info("Database engine created (%s)", make_url(settings.database_url).get_backend_name())
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Shared session factory; the engine is created on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            _get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _session_factory


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    Session for work outside a request (delivery worker, event producers).
    Rolls back on error; the caller commits.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections on shutdown. No-op if nothing was opened."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed when the route returns."""
    async with session_scope() as session:
        yield session
        await session.commit()
