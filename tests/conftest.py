"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: SQLAlchemy engine and session on in-memory SQLite
    - Tree Fixtures: settings and manager for the ``Category`` test model

Models and seeding helpers live in ``tree_support`` so test modules and the
CLI tests can import them.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from tree_support import Category

from nested_tree.core.database.base import Base
from nested_tree.core.database.hierarchy import TreeManager, clear_registry
from nested_tree.core.settings import TreeSettings, clear_settings_cache

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """Create async SQLAlchemy engine with in-memory SQLite.

    Yields:
        Async SQLAlchemy engine connected to in-memory SQLite.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create async database session with automatic table creation and cleanup.

    Yields:
        Async database session for testing.
    """
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        try:
            yield session
        finally:
            await session.rollback()

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _isolated_registry() -> None:
    """Start every test with an empty manager registry and settings cache."""
    clear_registry()
    clear_settings_cache()


# ============================================================================
# Tree Fixtures
# ============================================================================


@pytest.fixture
def tree_settings() -> TreeSettings:
    return TreeSettings(root_level=0, use_advisory_locks=False)


@pytest.fixture
def tree(tree_settings: TreeSettings) -> TreeManager[Category]:
    """Manager for the ``Category`` test model."""
    return TreeManager(Category, settings=tree_settings)
