"""Structural mutations of nested-set trees.

This module is the only writer of ``lft``, ``rgt``, ``level`` and ``root``
besides the repair engine. Every operation follows the same sequence:

1. Validate preconditions on the in-memory nodes (no statement runs when
   one fails).
2. Open the transaction boundary and lock the affected trees.
3. Reload the participants' coordinates from storage. All later statements
   use these bounds, captured before the first shift.
4. Apply bulk ``shift`` statements and the final placement.

Bulk statements run with ``synchronize_session="evaluate"``, so nodes
already loaded in the session see their new coordinates without a reload.

Insertion points for a target ``t``:

    ==============  ============  ===========
    position        key           level delta
    ==============  ============  ===========
    first child     t.lft + 1     1
    last child      t.rgt         1
    before          t.lft         0
    after           t.rgt + 1     0
    ==============  ============  ===========
"""

from __future__ import annotations

from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update

from nested_tree.core.database.exceptions import InvalidTreeOperationError
from nested_tree.core.database.hierarchy.coordinates import TREE_FIELDS, NodeCoordinates
from nested_tree.core.database.hierarchy.transaction import lock_roots, lock_table, tree_transaction
from nested_tree.core.database.inspection import is_new
from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from nested_tree.core.database.hierarchy.allocator import RootAllocator
    from nested_tree.core.settings import TreeSettings

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)

_SYNC = {"synchronize_session": "evaluate"}


class Position(StrEnum):
    """Where a node lands relative to its target."""

    FIRST_CHILD = "first_child"
    LAST_CHILD = "last_child"
    BEFORE = "before"
    AFTER = "after"

    @property
    def level_delta(self) -> int:
        """Depth difference between the placed node and the target."""
        return 1 if self in (Position.FIRST_CHILD, Position.LAST_CHILD) else 0

    @property
    def is_sibling(self) -> bool:
        return self.level_delta == 0

    def key(self, target: NodeCoordinates) -> int:
        """Boundary value the placed subtree will start at."""
        assert target.lft is not None and target.rgt is not None
        match self:
            case Position.FIRST_CHILD:
                return target.lft + 1
            case Position.LAST_CHILD:
                return target.rgt
            case Position.BEFORE:
                return target.lft
            case Position.AFTER:
                return target.rgt + 1

    def parent_id(self, target: NodeCoordinates) -> Any:
        """``parent_id`` of a node placed at this position."""
        return target.pk if self.level_delta else target.parent_id


class MutationEngine[T]:
    """Insert, move, promote and delete nodes of one nested-set model.

    Args:
        model: Nested-set model class
        settings: Tree settings (level origin, locking, savepoints)
        allocator: Source of ``root`` values for new trees
    """

    def __init__(self, model: type[T], settings: TreeSettings, allocator: RootAllocator) -> None:
        self.model = model
        self.settings = settings
        self.allocator = allocator

    @property
    def _table(self) -> str:
        return self.model.__tablename__  # type: ignore[attr-defined]

    # Primitives

    async def shift(self, session: AsyncSession, threshold: int, delta: int, root: Any) -> None:
        """Add ``delta`` to every bound at or past ``threshold`` in one tree.

        ``lft`` and ``rgt`` are shifted by separate statements, so a node
        straddling the threshold (an ancestor of the gap) only grows or
        shrinks on the right.
        """
        if delta == 0:
            return
        m: Any = self.model
        _lazy.debug(lambda: f"tree.shift: table={self._table} root={root} threshold={threshold} delta={delta}")
        await session.execute(
            update(m).where(m.root == root, m.lft >= threshold).values(lft=m.lft + delta).execution_options(**_SYNC)
        )
        await session.execute(
            update(m).where(m.root == root, m.rgt >= threshold).values(rgt=m.rgt + delta).execution_options(**_SYNC)
        )

    async def load_coordinates(self, session: AsyncSession, node: T, operation: str) -> NodeCoordinates:
        """Read a node's stored coordinates inside the current transaction.

        Raises:
            InvalidTreeOperationError: If the row is gone or unpositioned
        """
        m: Any = self.model
        pk = node.id  # type: ignore[attr-defined]
        stmt = select(m.id, m.lft, m.rgt, m.level, m.root, m.parent_id).where(m.id == pk)
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            raise InvalidTreeOperationError(
                f"{self.model.__name__} {pk!r} does not exist",
                operation=operation,
                node_id=pk,
            )
        coords = NodeCoordinates(*row)
        if not coords.is_positioned:
            raise InvalidTreeOperationError(
                f"{self.model.__name__} {pk!r} is not positioned in a tree",
                operation=operation,
                node_id=pk,
            )
        return coords

    async def _set_parent_id(self, session: AsyncSession, pk: Any, parent_id: Any) -> None:
        m: Any = self.model
        await session.execute(update(m).where(m.id == pk).values(parent_id=parent_id).execution_options(**_SYNC))

    async def _sync(self, session: AsyncSession, *nodes: Any) -> None:
        """Reload tree columns of nodes that live in the session."""
        for node in nodes:
            if node is not None and node in session and not is_new(node):
                await session.refresh(node, attribute_names=list(TREE_FIELDS))

    # Preconditions

    def _reject(self, message: str, operation: str, node: Any, target: Any = None) -> InvalidTreeOperationError:
        error = InvalidTreeOperationError(
            message,
            operation=operation,
            node_id=getattr(node, "id", None),
            target_id=getattr(target, "id", None),
        )
        logger.info(
            "Tree operation rejected",
            extra={"operation": operation, "reason": message, "model": self.model.__name__},
        )
        return error

    def require_saved(self, node: Any, operation: str, action: str = "moved") -> None:
        """Reject nodes that were never flushed.

        Raises:
            InvalidTreeOperationError: If ``node`` is new
        """
        if is_new(node):
            raise self._reject(f"Node must be saved before it can be {action}", operation, node)

    def _check_target(self, node: Any, target: Any, position: Position, operation: str) -> NodeCoordinates:
        if target is None or is_new(target):
            raise self._reject("Target node must be saved", operation, node, target)
        if node is target or (node.id is not None and node.id == target.id):
            raise self._reject("A node cannot be placed relative to itself", operation, node, target)
        coords = NodeCoordinates.of(target)
        if not coords.is_positioned:
            raise self._reject("Target node is not positioned in a tree", operation, node, target)
        if position.is_sibling and coords.is_root:
            raise self._reject("Cannot place a sibling next to a root node", operation, node, target)
        return coords

    # Operations

    async def make_root(self, session: AsyncSession, node: T) -> T:
        """Save a new node as the root of a new tree."""
        operation = "make_root"
        if not is_new(node):
            raise self._reject("Only a new node can become a new root", operation, node)

        async with tree_transaction(session, self.settings):
            root = await self.allocator.allocate(session, self.model, self.settings)
            n: Any = node
            n.lft, n.rgt, n.level, n.root, n.parent_id = 1, 2, self.settings.root_level, root, None
            session.add(node)
            await session.flush()

        _lazy.debug(lambda: f"tree.make_root: table={self._table} id={n.id} root={root}")
        return node

    async def add_node(self, session: AsyncSession, node: T, target: T, position: Position) -> T:
        """Save a new node at ``position`` relative to ``target``.

        Raises:
            InvalidTreeOperationError: If ``node`` is already saved or
                positioned, or ``target`` cannot take the position
        """
        operation = f"insert_{position.value}"
        n: Any = node
        if not is_new(node):
            raise self._reject("Node is already saved; use a move operation", operation, node, target)
        if n.lft is not None:
            raise self._reject("Node is already positioned", operation, node, target)
        self._check_target(node, target, position, operation)

        async with tree_transaction(session, self.settings):
            await lock_roots(session, self._table, [target.root], self.settings)  # type: ignore[attr-defined]
            t = await self.load_coordinates(session, target, operation)
            if position.is_sibling and t.is_root:
                raise self._reject("Cannot place a sibling next to a root node", operation, node, target)

            key = position.key(t)
            await self.shift(session, key, 2, t.root)

            n.lft, n.rgt = key, key + 1
            n.level = t.level + position.level_delta  # type: ignore[operator]
            n.root = t.root
            n.parent_id = position.parent_id(t)
            session.add(node)
            await session.flush()
            await self._sync(session, target)

        _lazy.debug(
            lambda: f"tree.add: table={self._table} id={n.id} target={t.pk} position={position} lft={key}"
        )
        return node

    async def move_node(self, session: AsyncSession, node: T, target: T, position: Position) -> T:
        """Move ``node`` and its subtree to ``position`` relative to ``target``.

        Works inside one tree and across trees of the same table.

        Raises:
            InvalidTreeOperationError: If ``node`` is new, ``target`` is the
                node or one of its descendants, or the position is a sibling
                of a root
        """
        operation = f"move_{position.value}"
        self.require_saved(node, operation)
        self._check_target(node, target, position, operation)
        if NodeCoordinates.of(target).is_descendant_of(NodeCoordinates.of(node)):
            raise self._reject("Cannot move a node into its own subtree", operation, node, target)

        async with tree_transaction(session, self.settings):
            await lock_roots(
                session,
                self._table,
                [node.root, target.root],  # type: ignore[attr-defined]
                self.settings,
            )
            # Bounds captured here are the only ones used below
            src = await self.load_coordinates(session, node, operation)
            t = await self.load_coordinates(session, target, operation)
            if t.is_descendant_of(src):
                raise self._reject("Cannot move a node into its own subtree", operation, node, target)
            if position.is_sibling and t.is_root:
                raise self._reject("Cannot place a sibling next to a root node", operation, node, target)

            key = position.key(t)
            level_delta = t.level - src.level + position.level_delta  # type: ignore[operator]

            if src.root == t.root:
                await self._move_within_tree(session, src, key, level_delta)
            else:
                await self._move_across_trees(session, src, key, level_delta, t.root)

            await self._set_parent_id(session, src.pk, position.parent_id(t))
            await self._sync(session, node, target)

        _lazy.debug(
            lambda: (
                f"tree.move: table={self._table} id={src.pk} target={t.pk} position={position} "
                f"from=[{src.lft},{src.rgt}]@{src.root} key={key}"
            )
        )
        return node

    async def _move_within_tree(self, session: AsyncSession, src: NodeCoordinates, key: int, level_delta: int) -> None:
        m: Any = self.model
        lft, rgt, width = src.lft, src.rgt, src.width
        assert lft is not None and rgt is not None

        await self.shift(session, key, width, src.root)
        if lft >= key:
            lft += width
            rgt += width

        offset = key - lft
        await session.execute(
            update(m)
            .where(m.root == src.root, m.lft >= lft, m.rgt <= rgt)
            .values(lft=m.lft + offset, rgt=m.rgt + offset, level=m.level + level_delta)
            .execution_options(**_SYNC)
        )
        await self.shift(session, rgt + 1, -width, src.root)

    async def _move_across_trees(
        self,
        session: AsyncSession,
        src: NodeCoordinates,
        key: int,
        level_delta: int,
        target_root: Any,
    ) -> None:
        m: Any = self.model
        assert src.lft is not None and src.rgt is not None
        width = src.width

        await self.shift(session, key, width, target_root)

        offset = key - src.lft
        await session.execute(
            update(m)
            .where(m.root == src.root, m.lft >= src.lft, m.rgt <= src.rgt)
            .values(lft=m.lft + offset, rgt=m.rgt + offset, level=m.level + level_delta, root=target_root)
            .execution_options(**_SYNC)
        )
        await self.shift(session, src.rgt + 1, -width, src.root)

    async def move_as_root(self, session: AsyncSession, node: T) -> T:
        """Detach ``node`` and its subtree into a new tree.

        Raises:
            InvalidTreeOperationError: If ``node`` is new or already a root
        """
        operation = "move_as_root"
        self.require_saved(node, operation)
        if NodeCoordinates.of(node).is_root:
            raise self._reject("Node is already a root", operation, node)

        async with tree_transaction(session, self.settings):
            await lock_roots(session, self._table, [node.root], self.settings)  # type: ignore[attr-defined]
            src = await self.load_coordinates(session, node, operation)
            if src.is_root:
                raise self._reject("Node is already a root", operation, node)

            new_root = await self.allocator.allocate(session, self.model, self.settings)
            assert src.lft is not None and src.rgt is not None and src.level is not None
            delta = 1 - src.lft
            level_delta = self.settings.root_level - src.level

            m: Any = self.model
            await session.execute(
                update(m)
                .where(m.root == src.root, m.lft >= src.lft, m.rgt <= src.rgt)
                .values(lft=m.lft + delta, rgt=m.rgt + delta, level=m.level + level_delta, root=new_root)
                .execution_options(**_SYNC)
            )
            await self.shift(session, src.rgt + 1, -src.width, src.root)
            await self._set_parent_id(session, src.pk, None)
            await self._sync(session, node)

        _lazy.debug(lambda: f"tree.move_as_root: table={self._table} id={src.pk} root={src.root}->{new_root}")
        return node

    async def delete(self, session: AsyncSession, node: T) -> int:
        """Delete ``node`` with its whole subtree and close the gap.

        Takes the table-wide lock, since the caller follows up with a
        repair pass over the whole table.

        Returns:
            Number of deleted rows
        """
        operation = "delete"
        self.require_saved(node, operation, "deleted")

        m: Any = self.model
        async with tree_transaction(session, self.settings):
            await lock_table(session, self._table, self.settings)
            src = await self.load_coordinates(session, node, operation)

            if src.is_leaf:
                stmt = delete(m).where(m.id == src.pk)
            else:
                stmt = delete(m).where(m.root == src.root, m.lft >= src.lft, m.rgt <= src.rgt)
            result = await session.execute(stmt.execution_options(**_SYNC))
            await self.shift(session, src.rgt + 1, -src.width, src.root)  # type: ignore[operator]

        _lazy.debug(lambda: f"tree.delete: table={self._table} id={src.pk} rows={result.rowcount}")
        return result.rowcount


__all__ = [
    "MutationEngine",
    "Position",
]
