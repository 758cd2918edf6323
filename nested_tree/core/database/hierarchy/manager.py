"""Tree manager: the public entry point for one nested-set model.

The manager combines primary-key lookups from :class:`BaseRepository` with
scope queries, the mutation engine, the repair engine and the integrity
checker. All methods take the session explicitly; the manager itself holds
no per-request state.

Example:
    tree = TreeManager(Category)

    electronics = await tree.create(session, Category(name="Electronics"))
    phones = await tree.create(session, Category(name="Phones"), parent=electronics)
    laptops = await tree.insert_after(session, Category(name="Laptops"), phones)

    await tree.move_as_first(session, laptops, electronics)
    await tree.query(electronics).children().all(session)  # [laptops, phones]

    await session.commit()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import delete

from nested_tree.core.database.exceptions import InvalidTreeOperationError, TreeIntegrityError
from nested_tree.core.database.hierarchy.allocator import RootAllocator
from nested_tree.core.database.hierarchy.coordinates import TREE_FIELDS
from nested_tree.core.database.hierarchy.integrity import check_integrity
from nested_tree.core.database.hierarchy.mutations import MutationEngine, Position
from nested_tree.core.database.hierarchy.repair import RepairEngine
from nested_tree.core.database.hierarchy.scopes import TreeQuery
from nested_tree.core.database.hierarchy.transaction import lock_table, tree_transaction
from nested_tree.core.database.inspection import has_changes, is_new
from nested_tree.core.database.repository import BaseRepository
from nested_tree.core.settings import get_tree_settings

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

    from nested_tree.core.database.hierarchy.integrity import IntegrityViolation
    from nested_tree.core.database.hierarchy.repair import RebuildReport, RepairReport
    from nested_tree.core.settings import TreeSettings


class TreeManager[T](BaseRepository[T]):
    """Queries and structural operations for one nested-set model.

    Args:
        model: Model class using ``NestedSetMixin``
        settings: Tree settings, defaults to the cached environment settings
        allocator: Root allocator, defaults to a fresh ``RootAllocator``
    """

    def __init__(
        self,
        model: type[T],
        settings: TreeSettings | None = None,
        allocator: RootAllocator | None = None,
    ) -> None:
        super().__init__(model)
        self.settings = settings or get_tree_settings()
        self.allocator = allocator or RootAllocator()
        self.mutations: MutationEngine[T] = MutationEngine(model, self.settings, self.allocator)
        self.repairs: RepairEngine[T] = RepairEngine(model, self.settings, self.mutations, self.allocator)

    # Queries

    def query(self, anchor: T | None = None) -> TreeQuery[T]:
        """Start a scope chain, optionally anchored at ``anchor``."""
        return TreeQuery(self.model, anchor, children_key=self.settings.children_key)

    def roots(self) -> TreeQuery[T]:
        return self.query().roots()

    async def as_tree(
        self,
        session: AsyncSession,
        query: TreeQuery[T] | None = None,
        children_key: str | None = None,
    ) -> list[dict[str, Any]]:
        """Materialize ``query`` (default: every tree) as nested mappings."""
        return await (query or self.query()).as_tree(session, children_key or self.settings.children_key)

    async def refresh(self, session: AsyncSession, node: T) -> T:
        """Reload the tree columns of ``node`` from storage."""
        await session.refresh(node, attribute_names=list(TREE_FIELDS))
        return node

    # Saving

    async def create(self, session: AsyncSession, node: T, parent: T | None = None) -> T:
        """Save a new node as the last child of ``parent`` or as a new root."""
        if parent is None:
            parent = await self._parent_from_id(session, node)
        if parent is None:
            return await self.mutations.make_root(session, node)
        return await self.append_to(session, node, parent)

    async def save(self, session: AsyncSession, node: T) -> T:
        """Persist ``node``, placing it according to ``parent_id``.

        - A new node is created under ``parent_id`` (or as a new root).
        - A saved node whose ``parent_id`` changed is moved as the last
          child of the new parent, or promoted to a root when cleared.
        - Anything else is a plain flush.
        """
        if is_new(node):
            return await self.create(session, node)

        if has_changes(node, "parent_id"):
            parent = await self._parent_from_id(session, node)
            return await self.set_parent(session, node, parent)

        await session.flush()
        return node

    async def set_parent(self, session: AsyncSession, node: T, parent: T | None) -> T:
        """Re-parent a saved node: last child of ``parent``, or a new root."""
        if parent is not None:
            return await self.move_as_last(session, node, parent)
        if node.lft == 1:  # type: ignore[attr-defined]
            node.parent_id = None  # type: ignore[attr-defined]
            await session.flush()
            return node
        return await self.move_as_root(session, node)

    async def _parent_from_id(self, session: AsyncSession, node: T) -> T | None:
        parent_id = node.parent_id  # type: ignore[attr-defined]
        if parent_id is None:
            return None
        parent = await self.get(session, parent_id)
        if parent is None:
            raise InvalidTreeOperationError(
                f"Parent {self.model.__name__} {parent_id!r} does not exist",
                operation="save",
                node_id=getattr(node, "id", None),
                target_id=parent_id,
            )
        return parent

    # Insertion of new nodes

    async def prepend_to(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.add_node(session, node, target, Position.FIRST_CHILD)

    async def append_to(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.add_node(session, node, target, Position.LAST_CHILD)

    async def insert_before(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.add_node(session, node, target, Position.BEFORE)

    async def insert_after(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.add_node(session, node, target, Position.AFTER)

    # Moves of saved nodes

    async def move_before(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.move_node(session, node, target, Position.BEFORE)

    async def move_after(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.move_node(session, node, target, Position.AFTER)

    async def move_as_first(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.move_node(session, node, target, Position.FIRST_CHILD)

    async def move_as_last(self, session: AsyncSession, node: T, target: T) -> T:
        return await self.mutations.move_node(session, node, target, Position.LAST_CHILD)

    async def move_as_root(self, session: AsyncSession, node: T) -> T:
        return await self.mutations.move_as_root(session, node)

    # Deletion and maintenance

    async def delete(self, session: AsyncSession, node: T) -> int:
        """Delete ``node`` and its subtree, then repair the table.

        Returns:
            Number of rows deleted, including rows removed by the repair
        """
        self.mutations.require_saved(node, "delete", "deleted")
        async with tree_transaction(session, self.settings):
            deleted = await self.mutations.delete(session, node)
            report = await self.repairs.repair(session)
        self._logger.info(
            "Tree node deleted",
            extra={
                "entity": self.model.__name__,
                "id": str(getattr(node, "id", None)),
                "rows": deleted,
                "repaired": report.total,
                "operation": "tree.delete",
            },
        )
        return deleted + report.orphaned_roots + report.orphaned_branches

    async def delete_where(self, session: AsyncSession, *criteria: ColumnElement[bool]) -> int:
        """Delete rows matching ``criteria`` directly, then repair the table.

        Descendants of deleted rows are removed by the repair; gaps left in
        the surviving trees are closed.

        Returns:
            Number of rows deleted by the filter itself
        """
        async with tree_transaction(session, self.settings):
            await lock_table(session, self.model.__tablename__, self.settings)  # type: ignore[attr-defined]
            result = await session.execute(
                delete(self.model).where(*criteria).execution_options(synchronize_session="fetch")
            )
            await self.repairs.repair(session)
        self._lazy.debug(lambda: f"tree.delete_where: {self.model.__name__} rows={result.rowcount}")
        return result.rowcount

    async def repair(self, session: AsyncSession) -> RepairReport:
        return await self.repairs.repair(session)

    async def rebuild(self, session: AsyncSession, *, reset: bool = False, verify: bool = False) -> RebuildReport:
        """Position unpositioned rows (all rows with ``reset``) from ``parent_id``.

        Args:
            session: Database session
            reset: Clear every interval first and rebuild all trees
            verify: Run the integrity checker afterwards

        Raises:
            TreeIntegrityError: If rows cannot be positioned, or ``verify``
                finds violations in the rebuilt trees
        """
        report = await self.repairs.rebuild(session, reset=reset)
        if verify:
            violations = await self.check(session)
            if violations:
                raise TreeIntegrityError(
                    f"Rebuilt {self.model.__name__} trees are invalid: {violations[0]}",
                    remaining=sorted({v.node_id for v in violations if v.node_id is not None}),
                )
        self._logger.info(
            "Tree rebuilt",
            extra={
                "entity": self.model.__name__,
                "passes": report.passes,
                "positioned": report.positioned,
                "reset": report.reset,
                "operation": "tree.rebuild",
            },
        )
        return report

    async def check(self, session: AsyncSession, root: Any = None) -> list[IntegrityViolation]:
        """Verify stored trees; an empty list means no violations."""
        return await check_integrity(session, self.model, root, root_level=self.settings.root_level)


__all__ = [
    "TreeManager",
]
