"""Hierarchical scopes translated into interval predicates.

A :class:`TreeQuery` is an immutable chain of criteria over one nested-set
model. Each scope reads the anchor node's coordinates once and adds plain
comparisons on ``lft``, ``rgt``, ``level`` and ``root``; nothing is
evaluated in Python and nothing touches the database until a terminal
method (``all``, ``first``, ``count``, ...) runs the statement.

Scopes compose with AND, so they can be chained with each other and with
ordinary filters:

    >>> query = Category.tree().query(phones)
    >>> await query.ancestors().where(Category.name != "Archive").all(session)
    >>> await query.descendants(depth=2).count(session)

Ordering:
    - descendants, children, siblings, leaves: ``lft`` ascending
    - ancestors, parents: ``lft`` descending (nearest first)
    - roots: ``root`` ascending
    - ``as_tree()`` always uses ``(root, lft)``
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, func, not_, select

from nested_tree.core.database.exceptions import InvalidTreeOperationError
from nested_tree.core.database.hierarchy.coordinates import NodeCoordinates
from nested_tree.core.database.hierarchy.materialize import DEFAULT_CHILDREN_KEY, to_hierarchy
from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

_lazy = get_lazy_logger(__name__)


class TreeQuery[T]:
    """Immutable, chainable scope query over a nested-set model.

    Args:
        model: Nested-set model class
        anchor: Node the relative scopes are computed from (optional for
            ``roots()``, ``leaves()`` and plain filters)
        criteria: WHERE clauses, combined with AND
        order: ORDER BY clauses; a scope replaces the previous ordering
        children_key: Default key used by :meth:`as_tree`
    """

    __slots__ = ("_anchor", "_children_key", "_criteria", "_order", "model")

    def __init__(
        self,
        model: type[T],
        anchor: T | None = None,
        *,
        criteria: tuple[ColumnElement[bool], ...] = (),
        order: tuple[Any, ...] = (),
        children_key: str = DEFAULT_CHILDREN_KEY,
    ) -> None:
        self.model = model
        self._anchor = anchor
        self._criteria = criteria
        self._order = order
        self._children_key = children_key

    def __repr__(self) -> str:
        anchor = getattr(self._anchor, "id", None)
        return f"TreeQuery({self.model.__name__}, anchor={anchor!r}, criteria={len(self._criteria)})"

    def _derive(
        self,
        *criteria: ColumnElement[bool],
        order: tuple[Any, ...] | None = None,
    ) -> TreeQuery[T]:
        return TreeQuery(
            self.model,
            self._anchor,
            criteria=(*self._criteria, *criteria),
            order=self._order if order is None else order,
            children_key=self._children_key,
        )

    def _anchor_coordinates(self, scope: str) -> NodeCoordinates:
        if self._anchor is None:
            raise InvalidTreeOperationError(
                f"Scope '{scope}' requires an anchor node",
                operation=scope,
            )
        coords = NodeCoordinates.of(self._anchor)
        if not coords.is_positioned:
            raise InvalidTreeOperationError(
                f"Scope '{scope}' requires a positioned anchor node",
                operation=scope,
                node_id=coords.pk,
            )
        return coords

    def _exclude_anchor(self, coords: NodeCoordinates) -> ColumnElement[bool]:
        return self.model.id != coords.pk  # type: ignore[attr-defined]

    # Relative scopes

    def descendants(self, include_self: bool = False, depth: int | None = None) -> TreeQuery[T]:
        """Nodes inside the anchor's interval.

        Args:
            include_self: Keep the anchor itself in the result
            depth: Only descend this many levels (1 = direct children)
        """
        a = self._anchor_coordinates("descendants")
        m: Any = self.model
        criteria = [m.lft >= a.lft, m.rgt <= a.rgt, m.root == a.root]
        if not include_self:
            criteria.append(self._exclude_anchor(a))
        if depth is not None:
            criteria.append(m.level <= a.level + depth)  # type: ignore[operator]
        return self._derive(*criteria, order=(m.lft.asc(),))

    def children(self, include_self: bool = False) -> TreeQuery[T]:
        """Direct children of the anchor."""
        return self.descendants(include_self, depth=1)

    def ancestors(self, include_self: bool = False, depth: int | None = None) -> TreeQuery[T]:
        """Nodes whose interval contains the anchor, nearest first.

        Args:
            include_self: Keep the anchor itself in the result
            depth: Skip the ``depth - 1`` nearest ancestors; only nodes at
                least ``depth`` levels above the anchor are kept
        """
        a = self._anchor_coordinates("ancestors")
        m: Any = self.model
        criteria = [m.lft <= a.lft, m.rgt >= a.rgt, m.root == a.root]
        if not include_self:
            criteria.append(self._exclude_anchor(a))
        if depth is not None:
            criteria.append(m.level <= a.level - depth)  # type: ignore[operator]
        return self._derive(*criteria, order=(m.lft.desc(),))

    def parents(self, include_self: bool = False) -> TreeQuery[T]:
        """Every node above the anchor, nearest first.

        The level bound excludes the anchor, so ``include_self`` has no
        effect on the result.
        """
        return self.ancestors(include_self, depth=1)

    def nearest_ancestors(self, depth: int, include_self: bool = False) -> TreeQuery[T]:
        """The ``depth`` nearest ancestors (1 = the parent), nearest first."""
        a = self._anchor_coordinates("nearest_ancestors")
        m: Any = self.model
        criteria = [m.lft <= a.lft, m.rgt >= a.rgt, m.root == a.root, m.level >= a.level - depth]  # type: ignore[operator]
        if not include_self:
            criteria.append(self._exclude_anchor(a))
        return self._derive(*criteria, order=(m.lft.desc(),))

    def parent(self) -> TreeQuery[T]:
        """The single node directly containing the anchor."""
        a = self._anchor_coordinates("parent")
        m: Any = self.model
        return self._derive(
            m.lft < a.lft,
            m.rgt > a.rgt,
            m.level == a.level - 1,  # type: ignore[operator]
            m.root == a.root,
            order=(m.lft.desc(),),
        )

    def prev(self) -> TreeQuery[T]:
        """The sibling ending right before the anchor starts."""
        a = self._anchor_coordinates("prev")
        m: Any = self.model
        return self._derive(m.rgt == a.lft - 1, m.root == a.root)  # type: ignore[operator]

    def next(self) -> TreeQuery[T]:
        """The sibling starting right after the anchor ends."""
        a = self._anchor_coordinates("next")
        m: Any = self.model
        return self._derive(m.lft == a.rgt + 1, m.root == a.root)  # type: ignore[operator]

    def siblings(self, include_self: bool = False) -> TreeQuery[T]:
        """Nodes sharing the anchor's parent; for a root, the other roots."""
        a = self._anchor_coordinates("siblings")
        m: Any = self.model
        if a.is_root:
            criteria = [m.lft == 1]
            order = (m.root.asc(),)
        else:
            criteria = [m.parent_id == a.parent_id, m.root == a.root, m.level == a.level]
            order = (m.lft.asc(),)
        if not include_self:
            criteria.append(self._exclude_anchor(a))
        return self._derive(*criteria, order=order)

    # Absolute scopes

    def roots(self) -> TreeQuery[T]:
        """One row per tree: the node opening its interval."""
        m: Any = self.model
        return self._derive(m.lft == 1, order=(m.root.asc(),))

    def leaves(self) -> TreeQuery[T]:
        """Nodes without descendants; combine with a relative scope to narrow."""
        m: Any = self.model
        order = self._order or (m.root.asc(), m.lft.asc())
        return self._derive(m.rgt - m.lft == 1, order=order)

    # Refinement

    def where(self, *criteria: ColumnElement[bool]) -> TreeQuery[T]:
        """Add caller filters (AND)."""
        return self._derive(*criteria)

    def exclude(self, *criteria: ColumnElement[bool]) -> TreeQuery[T]:
        """Drop rows matching all of ``criteria``."""
        if not criteria:
            return self
        return self._derive(not_(and_(*criteria)))

    def order_by(self, *clauses: Any) -> TreeQuery[T]:
        """Replace the current ordering."""
        return self._derive(order=tuple(clauses))

    @property
    def criteria(self) -> tuple[ColumnElement[bool], ...]:
        return self._criteria

    @property
    def statement(self) -> Select[tuple[T]]:
        """The underlying SELECT of model entities."""
        return select(self.model).where(*self._criteria).order_by(*self._order)

    # Terminals

    async def all(self, session: AsyncSession) -> Sequence[T]:
        stmt = self.statement
        _lazy.debug(lambda: f"tree.query: {self!r}")
        return (await session.scalars(stmt)).all()

    async def first(self, session: AsyncSession) -> T | None:
        return (await session.scalars(self.statement.limit(1))).first()

    async def one_or_none(self, session: AsyncSession) -> T | None:
        """Return the only match, None when nothing matches.

        Raises:
            sqlalchemy.exc.MultipleResultsFound: If more than one row matches
        """
        return (await session.scalars(self.statement)).one_or_none()

    async def count(self, session: AsyncSession) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._criteria)
        return (await session.execute(stmt)).scalar_one()

    async def exists(self, session: AsyncSession) -> bool:
        return await self.first(session) is not None

    async def rows(self, session: AsyncSession) -> list[dict[str, Any]]:
        """Fetch plain row mappings (table columns) instead of entities."""
        table = self.model.__table__  # type: ignore[attr-defined]
        stmt = select(*table.columns).where(*self._criteria).order_by(*self._order)
        result = await session.execute(stmt)
        return [dict(row) for row in result.mappings()]

    async def as_tree(self, session: AsyncSession, children_key: str | None = None) -> list[dict[str, Any]]:
        """Fetch the matching rows nested under their ancestors.

        Nesting follows ``level`` alone: when a filter drops an ancestor,
        its descendants attach to the nearest kept node above them.
        Unpositioned rows are left out.
        """
        m: Any = self.model
        ordered = self.where(m.lft.is_not(None)).order_by(m.root.asc(), m.lft.asc())
        rows = await ordered.rows(session)
        return to_hierarchy(rows, children_key or self._children_key)


__all__ = [
    "TreeQuery",
]
