"""Conversion between flat preorder rows and nested mappings.

Rows ordered by ``(root, lft)`` are a preorder walk of every tree in the
table, and ``level`` says how deep each row sits. That is enough to rebuild
the nesting in a single pass without querying parents.

Example:
    >>> rows = [
    ...     {"id": 1, "level": 0},
    ...     {"id": 2, "level": 1},
    ...     {"id": 3, "level": 2},
    ...     {"id": 4, "level": 1},
    ... ]
    >>> to_hierarchy(rows)
    [{'id': 1, 'level': 0, 'items': [{'id': 2, 'level': 1, 'items': [...]}, ...]}]
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

DEFAULT_CHILDREN_KEY = "items"


def _resolve(forest: list[dict[str, Any]], path: tuple[int, ...], children_key: str) -> dict[str, Any]:
    node = forest[path[0]]
    for index in path[1:]:
        node = node[children_key][index]
    return node


def to_hierarchy(
    rows: Iterable[Mapping[str, Any]],
    children_key: str = DEFAULT_CHILDREN_KEY,
    *,
    level_key: str = "level",
) -> list[dict[str, Any]]:
    """Nest ``(root, lft)``-ordered rows under their ancestors.

    The stack holds ``(level, index path)`` pairs of the open ancestors. An
    index path addresses a node inside the output, so entries never alias
    the mappings being built.

    Args:
        rows: Row mappings in preorder, each carrying ``level_key``
        children_key: Key under which each node's children are stored
        level_key: Key holding the node depth

    Returns:
        Top-level nodes in input order, children nested recursively. Every
        node is a copy of its row with an (possibly empty) children list.
    """
    forest: list[dict[str, Any]] = []
    stack: list[tuple[int, tuple[int, ...]]] = []

    for row in rows:
        item = dict(row)
        item[children_key] = []
        level = item[level_key]

        while stack and stack[-1][0] >= level:
            stack.pop()

        if stack:
            parent_path = stack[-1][1]
            siblings = _resolve(forest, parent_path, children_key)[children_key]
            siblings.append(item)
            path = (*parent_path, len(siblings) - 1)
        else:
            forest.append(item)
            path = (len(forest) - 1,)

        stack.append((level, path))

    return forest


def flatten_hierarchy(
    forest: Iterable[Mapping[str, Any]],
    children_key: str = DEFAULT_CHILDREN_KEY,
    *,
    level_key: str = "level",
    root_level: int = 0,
) -> list[dict[str, Any]]:
    """Walk nested mappings in preorder, recording each node's depth.

    Inverse of :func:`to_hierarchy`: the children key is dropped and
    ``level_key`` is set from the nesting depth.
    """
    flat: list[dict[str, Any]] = []
    pending: list[tuple[Mapping[str, Any], int]] = [(node, root_level) for node in reversed(list(forest))]

    while pending:
        node, level = pending.pop()
        item = {key: value for key, value in node.items() if key != children_key}
        item[level_key] = level
        flat.append(item)
        children = node.get(children_key) or []
        pending.extend((child, level + 1) for child in reversed(list(children)))

    return flat


__all__ = [
    "DEFAULT_CHILDREN_KEY",
    "flatten_hierarchy",
    "to_hierarchy",
]
