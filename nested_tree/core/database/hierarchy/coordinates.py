"""Interval coordinates of a nested-set node.

A node's position is fully described by five integers: the interval bounds
``lft``/``rgt``, its depth ``level``, the ``root`` identifier of the tree it
belongs to and its ``parent_id``. This module holds that value type and the
pure predicates derived from it; nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Columns owned by the mutation and repair engines
TREE_COORDINATES: tuple[str, ...] = ("lft", "rgt", "level", "root")
TREE_FIELDS: tuple[str, ...] = (*TREE_COORDINATES, "parent_id")


@dataclass(slots=True, frozen=True)
class NodeCoordinates:
    """Snapshot of a node's position in its tree.

    Attributes:
        pk: Primary key of the node (None for unsaved nodes)
        lft: Left bound of the interval
        rgt: Right bound of the interval
        level: Depth of the node
        root: Opaque identifier shared by every node of one tree
        parent_id: Primary key of the parent, None for roots

    Example:
        >>> node = NodeCoordinates(pk=3, lft=2, rgt=5, level=1, root=9)
        >>> node.width
        4
        >>> node.contains(NodeCoordinates(pk=4, lft=3, rgt=4, level=2, root=9))
        True
    """

    pk: Any = None
    lft: int | None = None
    rgt: int | None = None
    level: int | None = None
    root: Any = None
    parent_id: Any = None

    @classmethod
    def of(cls, node: Any) -> NodeCoordinates:
        """Capture the current coordinates of a node-like object."""
        return cls(
            pk=getattr(node, "id", None),
            lft=node.lft,
            rgt=node.rgt,
            level=node.level,
            root=node.root,
            parent_id=getattr(node, "parent_id", None),
        )

    @property
    def is_positioned(self) -> bool:
        """Whether the node carries a complete interval."""
        return None not in (self.lft, self.rgt, self.level, self.root)

    @property
    def is_leaf(self) -> bool:
        """A leaf spans exactly two consecutive boundary values."""
        return self.lft is not None and self.rgt is not None and self.rgt - self.lft == 1

    @property
    def is_root(self) -> bool:
        """Roots always start their tree's interval at 1."""
        return self.lft == 1

    @property
    def width(self) -> int:
        """Number of boundary values the subtree occupies (2 x node count)."""
        if self.lft is None or self.rgt is None:
            return 0
        return self.rgt - self.lft + 1

    @property
    def descendant_count(self) -> int:
        """Number of nodes strictly below this one."""
        return max(self.width // 2 - 1, 0)

    def is_descendant_of(self, other: NodeCoordinates) -> bool:
        """Check strict interval containment within the same tree."""
        if not (self.is_positioned and other.is_positioned):
            return False
        return (
            self.lft > other.lft  # type: ignore[operator]
            and self.rgt < other.rgt  # type: ignore[operator]
            and self.root == other.root
        )

    def contains(self, other: NodeCoordinates) -> bool:
        """Inverse of :meth:`is_descendant_of`."""
        return other.is_descendant_of(self)
