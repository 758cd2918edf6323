"""Mixin for models stored as a nested set.

Adds the tree columns (``parent_id``, ``lft``, ``rgt``, ``level``, ``root``)
and in-memory predicates to a model. Structural changes go through the
model's :class:`~nested_tree.core.database.hierarchy.manager.TreeManager`,
never through direct assignment of the interval columns.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from nested_tree.core.database.hierarchy.coordinates import NodeCoordinates

if TYPE_CHECKING:
    from nested_tree.core.database.hierarchy.manager import TreeManager
    from nested_tree.core.database.hierarchy.scopes import TreeQuery


class NestedSetMixin:
    """Mixin for models with nested-set (lft/rgt) tree columns.

    Several independent trees may share one table; ``root`` tells them apart.
    Interval columns are nullable: a row with NULL ``lft`` is unpositioned and
    is placed by ``TreeManager.rebuild()``.

    ``parent_id`` deliberately has no foreign key constraint. A raw filtered
    delete may remove a parent without its descendants; the repair engine
    detects and removes such dangling branches.

    Example:
        >>> class Category(Base, IntegerPKMixin, NestedSetMixin):
        ...     __tablename__ = "categories"
        ...     name: Mapped[str] = mapped_column(String(255))
        >>>
        >>> electronics = await Category.tree().create(session, Category(name="Electronics"))
        >>> phones = Category(name="Phones")
        >>> await Category.tree().append_to(session, phones, electronics)
        >>> children = await electronics.tree_query().children().all(session)

    Note:
        Models that declare their own ``__table_args__`` should include
        ``*NestedSetMixin.tree_indexes(__tablename__)`` to keep the
        ``(root, lft)`` and ``parent_id`` indexes.
    """

    __allow_unmapped__ = True

    parent_id: Mapped[int | None] = mapped_column(
        nullable=True,
        default=None,
        comment="Parent node id, NULL for roots",
    )
    lft: Mapped[int | None] = mapped_column(
        nullable=True,
        default=None,
        comment="Nested set left bound",
    )
    rgt: Mapped[int | None] = mapped_column(
        nullable=True,
        default=None,
        comment="Nested set right bound",
    )
    level: Mapped[int | None] = mapped_column(
        nullable=True,
        default=None,
        comment="Depth of the node",
    )
    root: Mapped[int | None] = mapped_column(
        nullable=True,
        default=None,
        comment="Identifier of the tree the node belongs to",
    )

    @staticmethod
    def tree_indexes(tablename: str) -> tuple[Index, ...]:
        """Indexes backing scope queries and repair detection."""
        return (
            Index(f"ix_{tablename}_root_lft", "root", "lft"),
            Index(f"ix_{tablename}_parent_id", "parent_id"),
        )

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        return NestedSetMixin.tree_indexes(cls.__tablename__)  # type: ignore[attr-defined]

    @property
    def coordinates(self) -> NodeCoordinates:
        """Snapshot of the current interval values (no query)."""
        return NodeCoordinates.of(self)

    @property
    def is_positioned(self) -> bool:
        return self.coordinates.is_positioned

    @property
    def is_leaf(self) -> bool:
        """Whether the node has no descendants (``rgt - lft == 1``)."""
        return self.coordinates.is_leaf

    @property
    def is_root(self) -> bool:
        """Whether the node opens its tree's interval (``lft == 1``)."""
        return self.coordinates.is_root

    def is_descendant_of(self, other: NestedSetMixin) -> bool:
        """Check interval containment against another node of the same tree."""
        return self.coordinates.is_descendant_of(other.coordinates)

    @classmethod
    def tree(cls) -> TreeManager[Any]:
        """Return the manager registered for this model."""
        from nested_tree.core.database.hierarchy.registry import get_manager

        return get_manager(cls)

    def tree_query(self) -> TreeQuery[Any]:
        """Start a scope chain anchored at this node."""
        return type(self).tree().query(self)


__all__ = [
    "NestedSetMixin",
]
