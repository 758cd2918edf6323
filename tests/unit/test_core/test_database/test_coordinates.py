"""Tests for the interval coordinate value type and mixin predicates."""

from __future__ import annotations

import pytest
from tree_support import Category

from nested_tree.core.database.hierarchy import NodeCoordinates


def test_leaf_and_width() -> None:
    leaf = NodeCoordinates(pk=2, lft=2, rgt=3, level=1, root=1)
    branch = NodeCoordinates(pk=1, lft=1, rgt=8, level=0, root=1)

    assert leaf.is_leaf
    assert not branch.is_leaf
    assert leaf.width == 2
    assert branch.width == 8
    assert branch.descendant_count == 3
    assert leaf.descendant_count == 0


def test_is_root_means_interval_starts_at_one() -> None:
    assert NodeCoordinates(lft=1, rgt=2, level=0, root=5).is_root
    assert not NodeCoordinates(lft=2, rgt=3, level=1, root=5).is_root


@pytest.mark.parametrize(
    ("child", "expected"),
    [
        (NodeCoordinates(lft=3, rgt=4, level=2, root=9), True),
        (NodeCoordinates(lft=2, rgt=5, level=1, root=9), False),  # same interval
        (NodeCoordinates(lft=3, rgt=4, level=2, root=8), False),  # other tree
        (NodeCoordinates(lft=6, rgt=7, level=1, root=9), False),  # disjoint
        (NodeCoordinates(lft=3, rgt=None, level=2, root=9), False),  # unpositioned
    ],
)
def test_is_descendant_of(child: NodeCoordinates, expected: bool) -> None:
    parent = NodeCoordinates(lft=2, rgt=5, level=1, root=9)

    assert child.is_descendant_of(parent) is expected
    assert parent.contains(child) is expected


def test_unpositioned_coordinates() -> None:
    coords = NodeCoordinates()

    assert not coords.is_positioned
    assert not coords.is_leaf
    assert coords.width == 0


def test_mixin_exposes_coordinates() -> None:
    node = Category(id=4, name="Phones", parent_id=1, lft=4, rgt=7, level=2, root=1)
    child = Category(id=5, name="Android", parent_id=4, lft=5, rgt=6, level=3, root=1)

    assert node.coordinates == NodeCoordinates(pk=4, lft=4, rgt=7, level=2, root=1, parent_id=1)
    assert node.is_positioned
    assert not node.is_leaf
    assert not node.is_root
    assert child.is_leaf
    assert child.is_descendant_of(node)
    assert not node.is_descendant_of(child)


def test_new_node_is_unpositioned() -> None:
    node = Category(name="Draft")

    assert not node.is_positioned
    assert node.lft is None


def test_mixin_declares_tree_indexes() -> None:
    index_names = {index.name for index in Category.__table__.indexes}

    assert {"ix_categories_root_lft", "ix_categories_parent_id"} <= index_names
