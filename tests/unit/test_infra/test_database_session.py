"""Tests for the process-wide engine and session factory."""

from __future__ import annotations

import pytest
from sqlalchemy import text

from nested_tree.core.settings import DatabaseSettings
from nested_tree.infra.database import (
    close_database,
    create_engine_from_settings,
    get_async_session,
    get_engine,
    get_session_factory,
)
from nested_tree.infra.database import session as session_module


@pytest.fixture
def memory_database(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(session_module, "_engine", None)
    monkeypatch.setattr(session_module, "_session_factory", None)


@pytest.mark.asyncio
async def test_engine_from_settings() -> None:
    engine = create_engine_from_settings(DatabaseSettings(dsn="sqlite+aiosqlite:///:memory:", echo=True))
    try:
        assert engine.dialect.name == "sqlite"
        assert engine.echo is True
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("memory_database")
async def test_engine_is_created_once_and_closed() -> None:
    engine = get_engine()

    assert get_engine() is engine
    assert get_session_factory().kw["expire_on_commit"] is False

    await close_database()

    assert session_module._engine is None
    assert session_module._session_factory is None


@pytest.mark.asyncio
@pytest.mark.usefixtures("memory_database")
async def test_get_async_session() -> None:
    try:
        async with get_async_session() as session:
            assert (await session.execute(text("SELECT 1"))).scalar_one() == 1
    finally:
        await close_database()


@pytest.mark.asyncio
async def test_close_without_engine_is_noop(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(session_module, "_engine", None)

    await close_database()

    assert session_module._engine is None
