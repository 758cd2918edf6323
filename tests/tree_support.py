"""Nested-set models and helpers shared by the test suite.

The helpers write coordinates directly to simulate corrupted or imported
tables; tests of the engines themselves go through ``TreeManager``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, mapped_column

from nested_tree.core.database.base import Base, IntegerPKMixin
from nested_tree.core.database.hierarchy import NestedSetMixin

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class Category(Base, IntegerPKMixin, NestedSetMixin):
    """Test model with integer PK and tree columns."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(255))

    def __repr__(self) -> str:
        return f"Category({self.name!r}, [{self.lft},{self.rgt}] level={self.level} root={self.root})"


class NotATree(Base, IntegerPKMixin):
    """Plain model used to check CLI model validation."""

    __tablename__ = "not_a_tree"

    name: Mapped[str] = mapped_column(String(255))


async def seed(session: AsyncSession, *rows: tuple[Any, ...]) -> dict[str, Category]:
    """Insert ``(id, name, parent_id, lft, rgt, level, root)`` rows bypassing the engines.

    Returns:
        Inserted nodes keyed by name
    """
    nodes = {}
    for pk, name, parent_id, lft, rgt, level, root in rows:
        nodes[name] = Category(id=pk, name=name, parent_id=parent_id, lft=lft, rgt=rgt, level=level, root=root)
    session.add_all(nodes.values())
    await session.flush()
    return nodes


async def stored(session: AsyncSession) -> dict[str, tuple[Any, ...]]:
    """Read ``name -> (lft, rgt, level, root, parent_id)`` straight from the table."""
    stmt = select(Category.name, Category.lft, Category.rgt, Category.level, Category.root, Category.parent_id)
    return {name: tuple(values) for name, *values in (await session.execute(stmt)).all()}


async def intervals(session: AsyncSession) -> dict[str, tuple[int, int]]:
    """Read ``name -> (lft, rgt)`` straight from the table."""
    return {name: values[:2] for name, values in (await stored(session)).items()}


CATALOG = (
    (1, "Electronics", None, 1, 14, 0, 1),
    (2, "Phones", 1, 2, 7, 1, 1),
    (3, "Android", 2, 3, 4, 2, 1),
    (4, "iOS", 2, 5, 6, 2, 1),
    (5, "Laptops", 1, 8, 11, 1, 1),
    (6, "Gaming", 5, 9, 10, 2, 1),
    (7, "TVs", 1, 12, 13, 1, 1),
    (8, "Books", None, 1, 4, 0, 2),
    (9, "Fiction", 8, 2, 3, 1, 2),
)
"""Two valid trees::

    Electronics [1,14] 0          Books [1,4] 0
    ├── Phones [2,7] 1            └── Fiction [2,3] 1
    │   ├── Android [3,4] 2
    │   └── iOS [5,6] 2
    ├── Laptops [8,11] 1
    │   └── Gaming [9,10] 2
    └── TVs [12,13] 1
"""


async def seed_catalog(session: AsyncSession) -> dict[str, Category]:
    return await seed(session, *CATALOG)
