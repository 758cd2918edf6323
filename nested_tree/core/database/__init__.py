"""Core database package: declarative base, repository and nested-set trees.

Base Classes and Mixins:
    - Base: Declarative base with auto table naming
    - IntegerPKMixin: Integer auto-increment primary key
    - NestedSetMixin: Nested-set tree columns (see ``hierarchy``)

Repository:
    - BaseRepository[T]: Primary-key lookups with explicit session passing
    - TreeManager[T]: BaseRepository plus tree queries and mutations

Change Tracking:
    - has_changes: Check if ORM instance has pending changes
    - is_new: Check if an instance was never flushed

Exceptions:
    - RepositoryError: Base exception for repository operations
    - NotFoundError: Entity not found (404-like)
    - TreeError, InvalidTreeOperationError, TreeIntegrityError: Tree failures

Example:
    from nested_tree.core.database import Base, IntegerPKMixin, NestedSetMixin

    class Category(Base, IntegerPKMixin, NestedSetMixin):
        __tablename__ = "categories"
        name: Mapped[str] = mapped_column(String(255))

    node = await Category.tree().get_or_raise(session, 42)
    ancestors = await node.tree_query().ancestors().all(session)
"""

from __future__ import annotations

from nested_tree.core.database.base import (
    NAMING_CONVENTION,
    Base,
    IntegerPKMixin,
)
from nested_tree.core.database.exceptions import (
    InvalidTreeOperationError,
    NotFoundError,
    RepositoryError,
    TreeError,
    TreeIntegrityError,
)
from nested_tree.core.database.hierarchy import (
    NestedSetMixin,
    TreeManager,
    TreeQuery,
    get_manager,
    register_manager,
)
from nested_tree.core.database.inspection import (
    has_changes,
    is_new,
)
from nested_tree.core.database.repository import BaseRepository

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "IntegerPKMixin",
    "InvalidTreeOperationError",
    "NestedSetMixin",
    "NotFoundError",
    "RepositoryError",
    "TreeError",
    "TreeIntegrityError",
    "TreeManager",
    "TreeQuery",
    "get_manager",
    "has_changes",
    "is_new",
    "register_manager",
]
