"""Repair and rebuild of corrupted nested-set tables.

Raw filtered deletes (and imports that only fill ``parent_id``) bypass the
mutation engine and leave trees with dangling branches, interval gaps or no
intervals at all. This module heals such tables.

Repair runs these steps in a fixed order, each over the whole table:

1. Orphaned-root branches: non-root rows whose ``root`` no longer belongs
   to any root row are deleted.
2. Orphaned-parent branches: rows whose ``parent_id`` references a missing
   row are deleted together with everything inside their interval.
3. Interval gaps: childless rows whose interval is wider than a leaf are
   shrunk together with the ``rgt`` of every row enclosing them, then every
   later row of their tree moves back by the excess. Processed in
   ascending ``rgt`` order.
4. Compaction: trees whose bounds still are not exactly ``1..2k`` are
   renumbered in place, keeping the order of their bounds. Rows without
   bounds are left alone.

Rebuild positions every row whose ``lft`` is NULL from ``parent_id`` alone,
pass after pass, until nothing is left or a pass makes no progress.

Both operations take the table-wide lock and, when done, update or expunge
the affected nodes held by the session.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm.attributes import set_committed_value

from nested_tree.core.database.exceptions import TreeIntegrityError
from nested_tree.core.database.hierarchy.coordinates import TREE_FIELDS
from nested_tree.core.database.hierarchy.transaction import lock_table, tree_transaction
from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from nested_tree.core.database.hierarchy.allocator import RootAllocator
    from nested_tree.core.database.hierarchy.mutations import MutationEngine
    from nested_tree.core.settings import TreeSettings

logger = logging.getLogger(__name__)
_lazy = get_lazy_logger(__name__)

_NO_SYNC = {"synchronize_session": False}


@dataclass(slots=True)
class RepairReport:
    """Rows touched by one repair run."""

    orphaned_roots: int = 0
    orphaned_branches: int = 0
    gaps_closed: int = 0
    compacted_roots: int = 0

    @property
    def total(self) -> int:
        return self.orphaned_roots + self.orphaned_branches + self.gaps_closed + self.compacted_roots

    @property
    def changed(self) -> bool:
        return self.total > 0


@dataclass(slots=True)
class RebuildReport:
    """Outcome of a rebuild run.

    Attributes:
        passes: Number of passes that positioned rows
        positioned: Rows that received coordinates
        reset: Whether all coordinates were cleared first
    """

    passes: int = 0
    positioned: int = 0
    reset: bool = False


class RepairEngine[T]:
    """Detect and fix structural corruption of one nested-set model.

    Args:
        model: Nested-set model class
        settings: Tree settings (level origin, pass limit, locking)
        mutations: Engine providing the ``shift`` primitive
        allocator: Source of ``root`` values when a row's pk is taken
    """

    def __init__(
        self,
        model: type[T],
        settings: TreeSettings,
        mutations: MutationEngine[T],
        allocator: RootAllocator,
    ) -> None:
        self.model = model
        self.settings = settings
        self.mutations = mutations
        self.allocator = allocator

    @property
    def _table(self) -> str:
        return self.model.__tablename__  # type: ignore[attr-defined]

    async def repair(self, session: AsyncSession) -> RepairReport:
        """Run the repair steps over the whole table."""
        report = RepairReport()
        async with tree_transaction(session, self.settings):
            await lock_table(session, self._table, self.settings)
            report.orphaned_roots = await self._delete_orphaned_roots(session)
            report.orphaned_branches = await self._delete_orphaned_branches(session)
            report.gaps_closed = await self._close_gaps(session)
            report.compacted_roots = await self._compact(session)
            if report.changed:
                await self.sync_session(session)

        if report.changed:
            logger.info(
                "Tree repaired",
                extra={
                    "table": self._table,
                    "orphaned_roots": report.orphaned_roots,
                    "orphaned_branches": report.orphaned_branches,
                    "gaps_closed": report.gaps_closed,
                    "compacted_roots": report.compacted_roots,
                },
            )
        return report

    async def _delete_orphaned_roots(self, session: AsyncSession) -> int:
        m: Any = self.model
        live_roots = select(m.root).where(m.parent_id.is_(None), m.lft.is_not(None), m.root.is_not(None))
        stmt = delete(m).where(
            m.parent_id.is_not(None),
            m.lft.is_not(None),
            m.root.not_in(live_roots.scalar_subquery()),
        )
        result = await session.execute(stmt.execution_options(**_NO_SYNC))
        _lazy.debug(lambda: f"tree.repair.orphaned_roots: table={self._table} rows={result.rowcount}")
        return result.rowcount

    async def _delete_orphaned_branches(self, session: AsyncSession) -> int:
        m: Any = self.model
        existing = select(m.id)
        orphans = (
            await session.execute(
                select(m.id, m.lft, m.rgt, m.root)
                .where(m.parent_id.is_not(None), m.lft.is_not(None), m.parent_id.not_in(existing.scalar_subquery()))
                .order_by(m.root, m.lft)
            )
        ).all()

        removed = 0
        for pk, lft, rgt, root in orphans:
            result = await session.execute(
                delete(m).where(m.root == root, m.lft >= lft, m.rgt <= rgt).execution_options(**_NO_SYNC)
            )
            removed += result.rowcount
            _lazy.debug(lambda: f"tree.repair.orphaned_branch: table={self._table} id={pk} rows={result.rowcount}")
        return removed

    async def _close_gaps(self, session: AsyncSession) -> int:
        m: Any = self.model
        parents = select(m.parent_id).where(m.parent_id.is_not(None))
        candidates = (
            await session.scalars(
                select(m.id)
                .where(m.lft.is_not(None), m.rgt - m.lft != 1, m.id.not_in(parents.scalar_subquery()))
                .order_by(m.rgt.asc())
            )
        ).all()

        fixed = 0
        for pk in candidates:
            # Earlier fixes may have moved this row
            row = (await session.execute(select(m.lft, m.rgt, m.root).where(m.id == pk))).one()
            lft, rgt, root = row
            move = rgt - lft - 1
            if move == 0:
                continue
            # The row itself and every row enclosing it, then everything after
            await session.execute(
                update(m)
                .where(m.root == root, m.lft < rgt, m.rgt >= rgt)
                .values(rgt=m.rgt - move)
                .execution_options(**_NO_SYNC)
            )
            await session.execute(
                update(m)
                .where(m.root == root, m.lft > rgt)
                .values(lft=m.lft - move, rgt=m.rgt - move)
                .execution_options(**_NO_SYNC)
            )
            fixed += 1
            _lazy.debug(lambda: f"tree.repair.gap: table={self._table} id={pk} move={move}")
        return fixed

    async def _compact(self, session: AsyncSession) -> int:
        m: Any = self.model
        broken = (
            await session.scalars(
                select(m.root)
                .where(m.lft.is_not(None))
                .group_by(m.root)
                .having((func.min(m.lft) != 1) | (func.max(m.rgt) != 2 * func.count()))
                .order_by(m.root)
            )
        ).all()

        for root in broken:
            rows = (
                await session.execute(
                    select(m.id, m.lft, m.rgt).where(m.root == root, m.lft.is_not(None), m.rgt.is_not(None))
                )
            ).all()
            bounds = sorted(
                [(lft, 0, pk) for pk, lft, _ in rows] + [(rgt, 1, pk) for pk, _, rgt in rows]
            )
            ranked: dict[Any, dict[str, int]] = {}
            for rank, (_, side, pk) in enumerate(bounds, start=1):
                ranked.setdefault(pk, {})["rgt" if side else "lft"] = rank

            for pk, lft, rgt in rows:
                values = ranked[pk]
                if (values["lft"], values["rgt"]) != (lft, rgt):
                    await session.execute(update(m).where(m.id == pk).values(**values).execution_options(**_NO_SYNC))
            _lazy.debug(lambda: f"tree.repair.compact: table={self._table} root={root} rows={len(rows)}")
        return len(broken)

    async def rebuild(self, session: AsyncSession, *, reset: bool = False) -> RebuildReport:
        """Position every row whose ``lft`` is NULL from its ``parent_id``.

        Each pass walks the unpositioned rows ordered by ``parent_id``
        (roots first). A row without parent becomes a new tree with
        ``root = pk`` when that value is free; a row whose parent is
        positioned becomes its last child. Rows whose parent is not
        positioned yet wait for the next pass.

        Args:
            session: Database session
            reset: Clear the coordinates of every row first, rebuilding all
                trees from ``parent_id``

        Raises:
            TreeIntegrityError: If a pass positions nothing while rows remain
                (a ``parent_id`` cycle or a missing parent), or the pass
                limit is exceeded
        """
        m: Any = self.model
        report = RebuildReport(reset=reset)

        async with tree_transaction(session, self.settings):
            await lock_table(session, self._table, self.settings)
            if reset:
                await session.execute(
                    update(m).values(lft=None, rgt=None, level=None, root=None).execution_options(**_NO_SYNC)
                )

            while True:
                pending = (
                    await session.execute(
                        select(m.id, m.parent_id)
                        .where(m.lft.is_(None))
                        .order_by(m.parent_id.asc().nulls_first(), m.id.asc())
                    )
                ).all()
                if not pending:
                    break

                if report.passes >= self.settings.rebuild_max_passes:
                    raise TreeIntegrityError(
                        f"Rebuild of {self._table} exceeded {self.settings.rebuild_max_passes} passes",
                        remaining=[pk for pk, _ in pending],
                    )

                fixed = 0
                for pk, parent_id in pending:
                    if await self._place(session, pk, parent_id):
                        fixed += 1

                report.passes += 1
                report.positioned += fixed
                logger.info(
                    "Rebuild pass",
                    extra={
                        "table": self._table,
                        "iteration": report.passes,
                        "fixed": fixed,
                        "remaining": len(pending) - fixed,
                    },
                )

                if fixed == 0:
                    raise TreeIntegrityError(
                        f"Rebuild of {self._table} cannot position the remaining rows",
                        remaining=[pk for pk, _ in pending],
                    )

            if report.positioned or reset:
                await self.sync_session(session)

        return report

    async def _place(self, session: AsyncSession, pk: Any, parent_id: Any) -> bool:
        m: Any = self.model

        if parent_id is None:
            root = pk
            if not await self.allocator.is_free(session, self.model, root):
                root = await self.allocator.allocate(session, self.model, self.settings)
            values = {"lft": 1, "rgt": 2, "level": self.settings.root_level, "root": root}
        else:
            parent = (
                await session.execute(select(m.lft, m.rgt, m.level, m.root).where(m.id == parent_id))
            ).one_or_none()
            if parent is None or parent.lft is None:
                return False
            key = parent.rgt
            await self.mutations.shift(session, key, 2, parent.root)
            values = {"lft": key, "rgt": key + 1, "level": parent.level + 1, "root": parent.root}

        await session.execute(update(m).where(m.id == pk).values(**values).execution_options(**_NO_SYNC))
        _lazy.debug(lambda: f"tree.rebuild.place: table={self._table} id={pk} {values}")
        return True

    async def sync_session(self, session: AsyncSession) -> None:
        """Bring nodes held by the session in line with storage.

        Nodes whose rows were deleted are expunged; the others get their
        tree columns overwritten without marking them dirty.
        """
        held = [
            obj
            for obj in list(session.identity_map.values())
            if isinstance(obj, self.model) and obj not in session.deleted
        ]
        if not held:
            return

        m: Any = self.model
        stmt = select(m.id, *(getattr(m, name) for name in TREE_FIELDS)).where(
            m.id.in_([obj.id for obj in held])  # type: ignore[attr-defined]
        )
        stored = {row[0]: row[1:] for row in (await session.execute(stmt)).all()}

        for obj in held:
            values = stored.get(obj.id)  # type: ignore[attr-defined]
            if values is None:
                session.expunge(obj)
                continue
            for name, value in zip(TREE_FIELDS, values, strict=True):
                set_committed_value(obj, name, value)


__all__ = [
    "RebuildReport",
    "RepairEngine",
    "RepairReport",
]
