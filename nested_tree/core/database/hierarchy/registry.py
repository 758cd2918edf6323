"""Registry binding nested-set models to their tree managers.

``Model.tree()`` resolves through here. Register a customised manager to
change settings or behaviour for one model; unregistered models get a
default :class:`TreeManager` on first use.

Example:
    register_manager(Category, TreeManager(Category, settings=TreeSettings(root_level=1)))
    Category.tree()  # -> the manager above
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nested_tree.core.database.hierarchy.manager import TreeManager

_managers: dict[type[Any], TreeManager[Any]] = {}


def register_manager[T](model: type[T], manager: TreeManager[T] | None = None) -> TreeManager[T]:
    """Bind ``manager`` (or a default one) to ``model``.

    Returns:
        The registered manager
    """
    from nested_tree.core.database.hierarchy.manager import TreeManager

    if manager is None:
        manager = TreeManager(model)
    elif manager.model is not model:
        msg = f"Manager for {manager.model.__name__} cannot be registered for {model.__name__}"
        raise ValueError(msg)
    _managers[model] = manager
    return manager


def get_manager[T](model: type[T]) -> TreeManager[T]:
    """Return the manager bound to ``model``, creating a default one if needed."""
    manager = _managers.get(model)
    if manager is None:
        manager = register_manager(model)
    return manager


def unregister_manager(model: type[Any]) -> None:
    _managers.pop(model, None)


def clear_registry() -> None:
    """Forget every binding (used by tests)."""
    _managers.clear()


__all__ = [
    "clear_registry",
    "get_manager",
    "register_manager",
    "unregister_manager",
]
