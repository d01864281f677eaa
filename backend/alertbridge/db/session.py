"""
Database Session Management
AlertBridge Trade Automation

Provides the async engine, the session factory and schema setup.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy import text
from loguru import logger

from alertbridge.core.config import DatabaseSettings, settings


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine, with pooling where the dialect supports it."""
    kwargs: Dict[str, Any] = {"echo": db_settings.echo, "future": True}
    if not db_settings.is_sqlite:
        kwargs.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.max_overflow,
            pool_timeout=db_settings.pool_timeout,
            pool_recycle=db_settings.pool_recycle,
            pool_pre_ping=True,  # Verify connections before use
        )
    return create_async_engine(db_settings.url, **kwargs)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine(settings.db)

AsyncSessionLocal = create_session_factory(engine)



async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database tables.

    Creates any missing tables from the model metadata.
    """
    from alertbridge.db.base import Base
    # Import models module to register all models with Base
    from alertbridge.db import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def health_check(session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        async with (session_factory or AsyncSessionLocal)() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
