"""Database engine and session management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nested_tree.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from nested_tree.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create an async engine for the configured URL.

    Args:
        db_settings: Database settings.

    Returns:
        New AsyncEngine (caller owns disposal).
    """
    return create_async_engine(
        db_settings.dsn,
        echo=db_settings.echo,
        pool_pre_ping=db_settings.pool_pre_ping,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine, _session_factory
    if _engine is None:
        db_settings = get_db_settings()
        _engine = create_engine_from_settings(db_settings)
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=db_settings.expire_on_commit,
            autoflush=False,
        )
        logger.debug("Database engine created", extra={"dialect": db_settings.dialect})
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory."""
    get_engine()
    assert _session_factory is not None
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
        async with get_async_session() as session:
            async with session.begin():
                await manager.append_to(session, node, parent)
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_database() -> None:
    """Dispose the process-wide engine.

    This should be called during application shutdown.
    """
    global _engine, _session_factory
    if _engine is None:
        return

    logger.info("Closing database connection")
    await _engine.dispose()
    _engine = None
    _session_factory = None
