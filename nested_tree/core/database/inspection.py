"""SQLAlchemy instance inspection helpers.

The tree engines decide between "insert" and "move" code paths from the
instance state (a node that was never flushed is new and unpositioned) and
detect re-parenting from the attribute history of ``parent_id``. None of
these helpers trigger database I/O, which matters with async sessions where
an implicit lazy load would fail.

Example:
    >>> node = Category(name="Phones")
    >>> is_new(node)
    True
    >>> has_changes(saved_node, "parent_id")
    False
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect as sa_inspect

if TYPE_CHECKING:
    from sqlalchemy.orm import InstanceState


def is_new(instance: Any) -> bool:
    """Check if instance is new (never flushed to the database)."""
    state: InstanceState[Any] = sa_inspect(instance)
    return state.pending or state.transient


def has_changes(instance: Any, *attrs: str) -> bool:
    """Check if ORM instance has pending changes.

    Args:
        instance: SQLAlchemy ORM model instance
        *attrs: Optional attribute names to check. If empty, checks all.

    Returns:
        True if instance has pending changes, False otherwise.
    """
    state: InstanceState[Any] = sa_inspect(instance)

    if state.pending or state.deleted:
        return True

    if not attrs:
        return state.modified

    for attr_name in attrs:
        if attr_name not in state.dict:
            continue
        attr_state = state.attrs.get(attr_name)
        if attr_state is not None and attr_state.history.has_changes():
            return True

    return False


__all__ = [
    "has_changes",
    "is_new",
]
