"""Minimal generic repository for SQLAlchemy models.

Provides primary-key lookups with explicit session passing. The tree
manager builds on it; for anything else, use the session directly - this
is a convenience, not a cage.

Example:
    repo = BaseRepository(Category)
    category = await repo.get_or_raise(session, 42)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from nested_tree.core.database.exceptions import NotFoundError
from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository[T]:
    """Minimal generic repository.

    Provides:
        - get(session, id) -> T | None
        - get_or_raise(session, id) -> T (raises NotFoundError)
        - get_many(session, ids) -> Sequence[T]
    """

    def __init__(self, model: type[T]) -> None:
        """Initialize repository with model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model
        # Standard logger for INFO/WARNING/ERROR
        self._logger = logging.getLogger(f"nested_tree.repository.{model.__name__}")
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(f"nested_tree.repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Get entity by primary key.

        Args:
            session: Database session
            id: Primary key value

        Returns:
            Entity if found, None otherwise
        """
        instance = await session.get(self.model, id)
        self._lazy.debug(
            lambda: f"db.get: {self.model.__name__}({id}) -> {'found' if instance else 'not found'}"
        )
        return instance

    async def get_or_raise(self, session: AsyncSession, id: Any) -> T:  # noqa: A002
        """Get entity by primary key or raise NotFoundError.

        Raises:
            NotFoundError: If entity doesn't exist
        """
        instance = await self.get(session, id)
        if instance is None:
            self._logger.info(
                "Entity not found",
                extra={
                    "entity": self.model.__name__,
                    "id": str(id),
                    "operation": "db.get_or_raise",
                },
            )
            raise NotFoundError(self.model.__name__, {"id": id})
        return instance

    async def get_many(self, session: AsyncSession, ids: Sequence[Any]) -> Sequence[T]:
        """Get entities by primary keys, ordered by primary key."""
        if not ids:
            return []
        pk = self._pk_attr()
        result = await session.execute(select(self.model).where(pk.in_(ids)).order_by(pk))
        return result.scalars().all()

    def _pk_attr(self) -> Any:
        return getattr(self.model, "id")


__all__ = [
    "BaseRepository",
]
