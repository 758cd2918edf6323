"""Allocation of identifiers for new trees."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event, func, select

from nested_tree.core.database.hierarchy.transaction import lock_allocation
from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import Session, SessionTransaction

    from nested_tree.core.settings import TreeSettings

_lazy = get_lazy_logger(__name__)

_SESSION_INFO_KEY = "nested_tree.allocated_roots"


def _forget_issued(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        session.info.get(_SESSION_INFO_KEY, {}).clear()


def _issued(session: AsyncSession) -> dict[str, set[int]]:
    if _SESSION_INFO_KEY not in session.info:
        session.info[_SESSION_INFO_KEY] = {}
        event.listen(session.sync_session, "after_transaction_end", _forget_issued)
    return session.info[_SESSION_INFO_KEY]


class RootAllocator:
    """Hands out ``root`` values for new trees: ``max(root) + 1``, or 1.

    Allocation holds the table's allocation lock (PostgreSQL) until the
    surrounding transaction ends, so two writers can never read the same
    maximum. Values handed out but not flushed yet are remembered on the
    session, which keeps consecutive allocations in one unit of work
    distinct even with autoflush disabled. They are forgotten when the
    outermost transaction ends, committed or rolled back.

    Example:
        >>> allocator = RootAllocator()
        >>> await allocator.allocate(session, Category, settings)
        4
    """

    async def allocate(
        self,
        session: AsyncSession,
        model: type[Any],
        settings: TreeSettings,
    ) -> int:
        """Allocate a fresh root identifier for ``model``'s table.

        Args:
            session: Session holding the current transaction
            model: Nested-set model class
            settings: Tree settings (lock toggle)

        Returns:
            Root value not used by any stored or pending tree
        """
        table = model.__tablename__
        await lock_allocation(session, table, settings)

        stored = (await session.execute(select(func.max(model.root)))).scalar()
        issued: set[int] = _issued(session).setdefault(table, set())
        value = max([stored or 0, *issued]) + 1
        issued.add(value)

        _lazy.debug(lambda: f"tree.allocate_root: table={table} root={value}")
        return value

    async def is_free(self, session: AsyncSession, model: type[Any], value: Any) -> bool:
        """Check that no positioned row and no pending allocation uses ``value``."""
        issued: dict[str, set[int]] = session.info.get(_SESSION_INFO_KEY, {})
        if value in issued.get(model.__tablename__, ()):
            return False
        stmt = select(func.count()).select_from(model).where(
            model.root == value,
            model.lft.is_not(None),
        )
        return (await session.execute(stmt)).scalar_one() == 0


__all__ = [
    "RootAllocator",
]
