"""Tests for scope translation into interval predicates.

Scopes run against the two ``CATALOG`` trees from ``tree_support``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from tree_support import Category, seed_catalog

from nested_tree.core.database.exceptions import InvalidTreeOperationError
from nested_tree.core.database.hierarchy import TreeQuery

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from nested_tree.core.database.hierarchy import TreeManager


@pytest.fixture
async def nodes(db_session: AsyncSession) -> dict[str, Category]:
    return await seed_catalog(db_session)


def names(result: Sequence[Category]) -> list[str]:
    return [node.name for node in result]


# ============================================================================
# Descendants and children
# ============================================================================


@pytest.mark.asyncio
async def test_descendants_in_preorder(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    result = await tree.query(nodes["Electronics"]).descendants().all(db_session)

    assert names(result) == ["Phones", "Android", "iOS", "Laptops", "Gaming", "TVs"]


@pytest.mark.asyncio
async def test_descendants_include_self(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    result = await tree.query(nodes["Phones"]).descendants(include_self=True).all(db_session)

    assert names(result) == ["Phones", "Android", "iOS"]


@pytest.mark.asyncio
async def test_descendants_stay_in_their_tree(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    result = await tree.query(nodes["Books"]).descendants().all(db_session)

    assert names(result) == ["Fiction"]


@pytest.mark.asyncio
async def test_children_are_one_level_down(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Electronics"])

    assert names(await query.children().all(db_session)) == ["Phones", "Laptops", "TVs"]
    assert names(await query.descendants(depth=2).all(db_session)) == [
        "Phones",
        "Android",
        "iOS",
        "Laptops",
        "Gaming",
        "TVs",
    ]
    assert names(await query.children(include_self=True).all(db_session)) == [
        "Electronics",
        "Phones",
        "Laptops",
        "TVs",
    ]


@pytest.mark.asyncio
async def test_children_of_leaf_is_empty(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    assert await tree.query(nodes["Gaming"]).children().all(db_session) == []


# ============================================================================
# Ancestors and parents
# ============================================================================


@pytest.mark.asyncio
async def test_ancestors_nearest_first(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Gaming"])

    assert names(await query.ancestors().all(db_session)) == ["Laptops", "Electronics"]
    assert names(await query.ancestors(include_self=True).all(db_session)) == ["Gaming", "Laptops", "Electronics"]


@pytest.mark.asyncio
async def test_ancestors_depth_limits_climb(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Android"])

    assert names(await query.ancestors(depth=1).all(db_session)) == ["Phones", "Electronics"]
    assert names(await query.ancestors(depth=2).all(db_session)) == ["Electronics"]
    assert names(await query.ancestors(depth=3).all(db_session)) == []
    assert names(await query.ancestors(include_self=True, depth=0).all(db_session)) == [
        "Android",
        "Phones",
        "Electronics",
    ]


@pytest.mark.asyncio
async def test_parents_are_all_ancestors(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["iOS"])

    assert names(await query.parents().all(db_session)) == ["Phones", "Electronics"]
    assert names(await query.parents(include_self=True).all(db_session)) == ["Phones", "Electronics"]


@pytest.mark.asyncio
async def test_nearest_ancestors(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Android"])

    assert names(await query.nearest_ancestors(1).all(db_session)) == ["Phones"]
    assert names(await query.nearest_ancestors(2).all(db_session)) == ["Phones", "Electronics"]
    assert names(await query.nearest_ancestors(1, include_self=True).all(db_session)) == ["Android", "Phones"]


@pytest.mark.asyncio
async def test_parent_scope(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    parent = await tree.query(nodes["iOS"]).parent().one_or_none(db_session)
    none = await tree.query(nodes["Electronics"]).parent().one_or_none(db_session)

    assert parent is nodes["Phones"]
    assert none is None


# ============================================================================
# Roots, siblings and leaves
# ============================================================================


@pytest.mark.asyncio
async def test_roots_one_per_tree(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    assert names(await tree.roots().all(db_session)) == ["Electronics", "Books"]


@pytest.mark.asyncio
async def test_prev_and_next_siblings(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    laptops = tree.query(nodes["Laptops"])

    assert await laptops.prev().one_or_none(db_session) is nodes["Phones"]
    assert await laptops.next().one_or_none(db_session) is nodes["TVs"]
    assert await tree.query(nodes["Phones"]).prev().one_or_none(db_session) is None
    assert await tree.query(nodes["TVs"]).next().one_or_none(db_session) is None


@pytest.mark.asyncio
async def test_siblings(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    laptops = tree.query(nodes["Laptops"])

    assert names(await laptops.siblings().all(db_session)) == ["Phones", "TVs"]
    assert names(await laptops.siblings(include_self=True).all(db_session)) == ["Phones", "Laptops", "TVs"]
    assert names(await tree.query(nodes["Books"]).siblings().all(db_session)) == ["Electronics"]


@pytest.mark.asyncio
async def test_leaves_of_subtree(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    result = await tree.query(nodes["Electronics"]).descendants().leaves().all(db_session)

    assert names(result) == ["Android", "iOS", "Gaming", "TVs"]


# ============================================================================
# Chaining and terminals
# ============================================================================


@pytest.mark.asyncio
async def test_scopes_compose_with_filters(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Electronics"]).descendants()

    filtered = query.where(Category.level == 2)
    excluded = query.exclude(Category.name.in_(["Android", "TVs"]))

    assert names(await filtered.all(db_session)) == ["Android", "iOS", "Gaming"]
    assert names(await excluded.all(db_session)) == ["Phones", "iOS", "Laptops", "Gaming"]
    assert await filtered.count(db_session) == 3


@pytest.mark.asyncio
async def test_order_by_replaces_scope_order(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    query = tree.query(nodes["Electronics"]).children().order_by(Category.name.desc())

    assert names(await query.all(db_session)) == ["TVs", "Phones", "Laptops"]
    assert (await query.first(db_session)) is nodes["TVs"]


def test_queries_are_immutable(tree: TreeManager[Category]) -> None:
    base = tree.query(Category(id=2, name="Phones", parent_id=1, lft=2, rgt=7, level=1, root=1))
    scoped = base.descendants()

    assert base.criteria == ()
    assert len(scoped.criteria) == 4
    assert isinstance(scoped, TreeQuery)
    assert scoped is not base


@pytest.mark.asyncio
async def test_rows_returns_mappings(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    rows = await tree.query(nodes["Laptops"]).descendants(include_self=True).rows(db_session)

    assert rows == [
        {"id": 5, "name": "Laptops", "parent_id": 1, "lft": 8, "rgt": 11, "level": 1, "root": 1},
        {"id": 6, "name": "Gaming", "parent_id": 5, "lft": 9, "rgt": 10, "level": 2, "root": 1},
    ]


@pytest.mark.asyncio
async def test_exists(
    db_session: AsyncSession, tree: TreeManager[Category], nodes: dict[str, Category]
) -> None:
    assert await tree.query(nodes["Phones"]).children().exists(db_session)
    assert not await tree.query(nodes["iOS"]).children().exists(db_session)


def test_statement_uses_interval_predicates(tree: TreeManager[Category]) -> None:
    anchor = Category(id=2, name="Phones", parent_id=1, lft=2, rgt=7, level=1, root=1)

    sql = str(tree.query(anchor).descendants(depth=1).statement.compile(compile_kwargs={"literal_binds": True}))

    assert "categories.lft >= 2" in sql
    assert "categories.rgt <= 7" in sql
    assert "categories.root = 1" in sql
    assert "categories.level <= 2" in sql
    assert "ORDER BY categories.lft ASC" in sql


def test_statement_matches_manual_select(tree: TreeManager[Category]) -> None:
    anchor = Category(id=2, name="Phones", parent_id=1, lft=2, rgt=7, level=1, root=1)
    expected = select(Category).where(Category.rgt == 1, Category.root == 1)

    actual = tree.query(anchor).prev().statement

    assert str(actual) == str(expected)


@pytest.mark.asyncio
async def test_node_tree_query_uses_registered_manager(
    db_session: AsyncSession, nodes: dict[str, Category]
) -> None:
    result = await nodes["Phones"].tree_query().children().all(db_session)

    assert names(result) == ["Android", "iOS"]


# ============================================================================
# Invalid anchors
# ============================================================================


@pytest.mark.parametrize("scope", ["descendants", "children", "ancestors", "parents", "parent", "prev", "next"])
def test_relative_scope_requires_positioned_anchor(tree: TreeManager[Category], scope: str) -> None:
    unpositioned = Category(name="Draft")

    with pytest.raises(InvalidTreeOperationError) as exc_info:
        getattr(tree.query(unpositioned), scope)()

    assert exc_info.value.operation in {scope, "descendants", "ancestors"}


def test_relative_scope_requires_anchor(tree: TreeManager[Category]) -> None:
    with pytest.raises(InvalidTreeOperationError, match="requires an anchor"):
        tree.query().descendants()
