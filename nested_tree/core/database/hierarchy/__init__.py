"""Nested-set (modified preorder traversal) trees.

Each node stores an interval ``[lft, rgt]`` that contains the intervals of
all its descendants, plus its ``level`` and the ``root`` identifier of its
tree. Hierarchical queries become interval comparisons, and structural
changes become a few bulk ``UPDATE`` statements.

Components:
    - NodeCoordinates: Interval value type and its predicates
    - NestedSetMixin: Tree columns and in-memory predicates for models
    - TreeQuery: Chainable scopes (descendants, ancestors, siblings, ...)
    - MutationEngine: Insert, move, promote and delete subtrees
    - RepairEngine: Heal corrupted tables and rebuild from ``parent_id``
    - RootAllocator: Serialized allocation of new tree identifiers
    - to_hierarchy / flatten_hierarchy: Rows to nested mappings and back
    - check_integrity: Read-only verification of stored trees
    - TreeManager: Public entry point bound to one model

Example:
    >>> from nested_tree.core.database import Base, IntegerPKMixin
    >>> from nested_tree.core.database.hierarchy import NestedSetMixin
    >>>
    >>> class Category(Base, IntegerPKMixin, NestedSetMixin):
    ...     __tablename__ = "categories"
    ...     name: Mapped[str] = mapped_column(String(255))
    >>>
    >>> tree = Category.tree()
    >>> electronics = await tree.create(session, Category(name="Electronics"))
    >>> phones = await tree.append_to(session, Category(name="Phones"), electronics)
    >>> await tree.as_tree(session)
    [{'id': 1, 'name': 'Electronics', ..., 'items': [{'id': 2, 'name': 'Phones', ..., 'items': []}]}]

Note:
    Mutations serialize per tree with advisory locks on PostgreSQL. On
    other backends the database's own write serialization applies.
"""

from nested_tree.core.database.hierarchy.allocator import RootAllocator
from nested_tree.core.database.hierarchy.coordinates import (
    TREE_COORDINATES,
    TREE_FIELDS,
    NodeCoordinates,
)
from nested_tree.core.database.hierarchy.integrity import (
    IntegrityViolation,
    ViolationCode,
    check_integrity,
)
from nested_tree.core.database.hierarchy.manager import TreeManager
from nested_tree.core.database.hierarchy.materialize import (
    DEFAULT_CHILDREN_KEY,
    flatten_hierarchy,
    to_hierarchy,
)
from nested_tree.core.database.hierarchy.mixins import NestedSetMixin
from nested_tree.core.database.hierarchy.mutations import MutationEngine, Position
from nested_tree.core.database.hierarchy.registry import (
    clear_registry,
    get_manager,
    register_manager,
    unregister_manager,
)
from nested_tree.core.database.hierarchy.repair import RebuildReport, RepairEngine, RepairReport
from nested_tree.core.database.hierarchy.scopes import TreeQuery
from nested_tree.core.database.hierarchy.transaction import tree_transaction

__all__ = [
    "DEFAULT_CHILDREN_KEY",
    "TREE_COORDINATES",
    "TREE_FIELDS",
    "IntegrityViolation",
    "MutationEngine",
    "NestedSetMixin",
    "NodeCoordinates",
    "Position",
    "RebuildReport",
    "RepairEngine",
    "RepairReport",
    "RootAllocator",
    "TreeManager",
    "TreeQuery",
    "ViolationCode",
    "check_integrity",
    "clear_registry",
    "flatten_hierarchy",
    "get_manager",
    "register_manager",
    "to_hierarchy",
    "tree_transaction",
    "unregister_manager",
]
