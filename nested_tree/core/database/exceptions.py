"""Database repository and tree exceptions.

Custom exceptions for repository and nested-set operations that provide
better error messages and typing than raw SQLAlchemy exceptions.
"""
from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """Base exception for repository operations.

    Raised when a repository operation fails due to programming
    errors, configuration issues, or unexpected states.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize repository error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class NotFoundError(RepositoryError):
    """Entity not found in database.

    Attributes:
        model_name: Name of the model class that wasn't found
        identifier: The key/value that was searched for
    """

    def __init__(self, model_name: str, identifier: dict[str, Any]):
        self.model_name = model_name
        self.identifier = identifier

        id_str = ", ".join(f"{k}={v!r}" for k, v in identifier.items())
        message = f"{model_name} not found with {id_str}"

        super().__init__(message, details={"model": model_name, **identifier})

    def __repr__(self) -> str:
        """Repr for debugging."""
        return f"NotFoundError(model={self.model_name!r}, identifier={self.identifier!r})"


class TreeError(RepositoryError):
    """Base exception for nested-set tree operations."""


class InvalidTreeOperationError(TreeError):
    """A structural precondition of a tree operation does not hold.

    Raised before any statement is executed, so the tree is untouched.
    Typical causes: inserting a node that is already positioned, moving a
    node that was never saved, targeting the node itself or one of its
    descendants, or requesting a sibling position next to a root.

    Attributes:
        operation: Name of the rejected operation (e.g. "move_before")
        node_id: Primary key of the node being placed (None when unsaved)
        target_id: Primary key of the target node, if any
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        node_id: Any = None,
        target_id: Any = None,
    ):
        self.operation = operation
        self.node_id = node_id
        self.target_id = target_id

        details: dict[str, Any] = {"operation": operation}
        if node_id is not None:
            details["node_id"] = node_id
        if target_id is not None:
            details["target_id"] = target_id
        super().__init__(message, details=details)


class TreeIntegrityError(TreeError):
    """The stored tree is inconsistent in a way repair cannot resolve.

    Raised by rebuild when a pass positions no rows while unpositioned rows
    remain (a parent_id cycle or a parent that never gets positioned), or
    when the configured pass limit is exceeded.

    Attributes:
        remaining: Primary keys of the rows still unpositioned
    """

    def __init__(self, message: str, remaining: list[Any] | None = None):
        self.remaining = list(remaining or [])
        super().__init__(
            message,
            details={"remaining": self.remaining[:20], "remaining_count": len(self.remaining)},
        )


__all__ = [
    "InvalidTreeOperationError",
    "NotFoundError",
    "RepositoryError",
    "TreeError",
    "TreeIntegrityError",
]
