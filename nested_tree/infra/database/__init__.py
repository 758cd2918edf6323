"""Database infrastructure package.

Example:
    from nested_tree.infra.database import get_async_session

    async with get_async_session() as session:
        result = await session.execute(...)
"""

from .session import (
    close_database,
    create_engine_from_settings,
    get_async_session,
    get_engine,
    get_session_factory,
)

__all__ = [
    "close_database",
    "create_engine_from_settings",
    "get_async_session",
    "get_engine",
    "get_session_factory",
]
