"""
Database engine and sessions for the complaints table.

The engine is built on first use from DATABASE_URL and disposed on shutdown.
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from complaints.core.config import Settings, get_settings


class Base(DeclarativeBase):
    pass


_engine = None
_async_session_factory = None


def engine_options(settings: Settings) -> Dict[str, Any]:
    """
    Pooling for the configured backend. SQLite opens a connection per session
    and lets concurrent submissions queue on the file lock; PostgreSQL pools.
    """
    if settings.database_url.startswith("sqlite"):
        return {
            "poolclass": NullPool,
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        }
    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            **engine_options(settings),
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


async def init_db():
    """Create the complaints table if it does not exist."""
    from complaints.models import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
