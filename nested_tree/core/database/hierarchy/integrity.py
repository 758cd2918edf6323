"""Read-only verification of stored nested-set trees.

Walks each tree in ``(root, lft)`` order with a stack of open intervals and
reports every row that breaks the structural rules:

- bounds of a tree form exactly ``1..2k`` (no gaps, no duplicates)
- every interval is ordered and has an odd width
- intervals nest or are disjoint, never overlap
- a tree has a single root interval starting at 1
- ``parent_id`` names the nearest enclosing interval (NULL for the root)
- ``level`` is the parent's level plus one, the root at the level origin
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from itertools import groupby
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

_lazy = get_lazy_logger(__name__)


class ViolationCode(StrEnum):
    """Kinds of structural violations."""

    UNPOSITIONED = "unpositioned"
    BOUNDS = "bounds"
    WIDTH = "width"
    OVERLAP = "overlap"
    ROOT = "root"
    PARENT = "parent"
    LEVEL = "level"


@dataclass(slots=True, frozen=True)
class IntegrityViolation:
    """One broken rule, located by tree and row."""

    root: Any
    node_id: Any
    code: ViolationCode
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] root={self.root} id={self.node_id}: {self.message}"


def _check_tree(root: Any, rows: Sequence[Any], root_level: int) -> list[IntegrityViolation]:
    violations: list[IntegrityViolation] = []

    def report(node_id: Any, code: ViolationCode, message: str) -> None:
        violations.append(IntegrityViolation(root, node_id, code, message))

    bounds = sorted([row.lft for row in rows] + [row.rgt for row in rows])
    if bounds != list(range(1, 2 * len(rows) + 1)):
        report(None, ViolationCode.BOUNDS, f"bounds of {len(rows)} nodes are not 1..{2 * len(rows)}")

    stack: list[Any] = []
    for row in rows:
        if row.rgt <= row.lft or (row.rgt - row.lft) % 2 == 0:
            report(row.id, ViolationCode.WIDTH, f"interval [{row.lft},{row.rgt}] is not a valid subtree")

        while stack and stack[-1].rgt < row.lft:
            stack.pop()

        parent = stack[-1] if stack else None
        if parent is not None and row.rgt > parent.rgt:
            report(row.id, ViolationCode.OVERLAP, f"interval overlaps node {parent.id}")

        if parent is None:
            if row.lft != 1:
                report(row.id, ViolationCode.ROOT, "top-level interval does not start at 1")
            if row.parent_id is not None:
                report(row.id, ViolationCode.PARENT, f"root references parent {row.parent_id}")
            if row.level != root_level:
                report(row.id, ViolationCode.LEVEL, f"root level is {row.level}, expected {root_level}")
        else:
            if row.parent_id != parent.id:
                report(row.id, ViolationCode.PARENT, f"parent_id is {row.parent_id}, enclosing node is {parent.id}")
            if row.level != parent.level + 1:
                report(row.id, ViolationCode.LEVEL, f"level is {row.level}, expected {parent.level + 1}")

        stack.append(row)

    return violations


async def check_integrity(
    session: AsyncSession,
    model: type[Any],
    root: Any = None,
    *,
    root_level: int = 0,
) -> list[IntegrityViolation]:
    """Verify the stored trees of ``model``.

    Args:
        session: Database session
        model: Nested-set model class
        root: Only check this tree (default: every tree)
        root_level: Expected level of root nodes

    Returns:
        All violations found, empty when every checked tree is valid
    """
    m: Any = model
    stmt = select(m.id, m.parent_id, m.lft, m.rgt, m.level, m.root)
    if root is not None:
        stmt = stmt.where(m.root == root)
    rows = (await session.execute(stmt.order_by(m.root, m.lft, m.id))).all()

    violations: list[IntegrityViolation] = []
    positioned = []
    for row in rows:
        if None in (row.lft, row.rgt, row.level, row.root):
            violations.append(
                IntegrityViolation(row.root, row.id, ViolationCode.UNPOSITIONED, "row has no complete interval")
            )
        else:
            positioned.append(row)

    for tree_root, tree_rows in groupby(positioned, key=lambda row: row.root):
        violations.extend(_check_tree(tree_root, list(tree_rows), root_level))

    _lazy.debug(
        lambda: f"tree.check: table={model.__tablename__} rows={len(rows)} violations={len(violations)}"
    )
    return violations


__all__ = [
    "IntegrityViolation",
    "ViolationCode",
    "check_integrity",
]
