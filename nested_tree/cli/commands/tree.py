"""Nested-set maintenance commands.

MODEL is the import path of a mapped nested-set model, ``module:Class``.
The database URL comes from ``DATABASE_URL`` (see ``DatabaseSettings``).

Example:bash
    # Position rows that only have parent_id set
    nested-tree tree rebuild myapp.models:Category

    # Recompute every interval from parent_id
    nested-tree tree rebuild myapp.models:Category --reset --verify

    # Remove dangling branches and close interval gaps
    nested-tree tree repair myapp.models:Category

    # Verify stored trees (exit code 1 on violations)
    nested-tree tree check myapp.models:Category --format json

    # Print one tree as nested JSON
    nested-tree tree show myapp.models:Category --root 3
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import importlib
import json
import sys
from typing import TYPE_CHECKING, Any

import click
from sqlalchemy.ext.asyncio import AsyncSession

from nested_tree.cli.utils import coro, error, header, info, key_values, success, warning
from nested_tree.core.database.exceptions import TreeIntegrityError
from nested_tree.core.database.hierarchy import NestedSetMixin, TreeManager
from nested_tree.core.settings import get_db_settings
from nested_tree.infra.database import create_engine_from_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


def load_model(path: str) -> type[Any]:
    """Import ``module:Class`` and check it is a nested-set model.

    Raises:
        click.BadParameter: If the path is malformed, cannot be imported or
            does not name a nested-set model
    """
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        msg = f"expected 'module:Class', got {path!r}"
        raise click.BadParameter(msg, param_hint="MODEL")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        msg = f"cannot import {module_name!r}: {e}"
        raise click.BadParameter(msg, param_hint="MODEL") from e

    model = getattr(module, class_name, None)
    if not isinstance(model, type) or not issubclass(model, NestedSetMixin):
        msg = f"{path!r} is not a nested-set model"
        raise click.BadParameter(msg, param_hint="MODEL")
    return model


@asynccontextmanager
async def _session() -> AsyncGenerator[AsyncSession]:
    engine = create_engine_from_settings(get_db_settings())
    try:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session
    finally:
        await engine.dispose()


def _manager(model_path: str) -> TreeManager[Any]:
    return load_model(model_path).tree()


@click.group(name="tree")
def tree() -> None:
    """Nested-set tree maintenance."""


@tree.command()
@click.argument("model")
@click.option("--reset", is_flag=True, help="Clear all intervals and rebuild every tree from parent_id")
@click.option("--verify", is_flag=True, help="Check the rebuilt trees and roll back on violations")
@coro
async def rebuild(model: str, reset: bool, verify: bool) -> None:
    """Position unpositioned rows of MODEL from parent_id."""
    manager = _manager(model)
    header(f"Rebuilding {manager.model.__name__}")

    async with _session() as session:
        try:
            async with session.begin():
                report = await manager.rebuild(session, reset=reset, verify=verify)
        except TreeIntegrityError as e:
            error(f"Rebuild failed: {e.message}")
            key_values({"remaining": e.details["remaining_count"], "sample": e.details["remaining"]})
            sys.exit(1)

    key_values({"passes": report.passes, "positioned": report.positioned, "reset": report.reset})
    if report.positioned:
        success("Rebuild complete")
    else:
        info("Nothing to rebuild")


@tree.command()
@click.argument("model")
@coro
async def repair(model: str) -> None:
    """Remove orphaned branches of MODEL and close interval gaps."""
    manager = _manager(model)
    header(f"Repairing {manager.model.__name__}")

    async with _session() as session:
        report = await manager.repair(session)
        await session.commit()

    key_values(
        {
            "orphaned roots": report.orphaned_roots,
            "orphaned branches": report.orphaned_branches,
            "gaps closed": report.gaps_closed,
            "compacted trees": report.compacted_roots,
        }
    )
    if report.changed:
        success("Repair complete")
    else:
        info("No corruption found")


@tree.command()
@click.argument("model")
@click.option("--root", "root", type=int, default=None, help="Only check this tree")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@coro
async def check(model: str, root: int | None, output_format: str) -> None:
    """Verify the stored trees of MODEL."""
    manager = _manager(model)

    async with _session() as session:
        violations = await manager.check(session, root)

    if output_format == "json":
        payload = [
            {"root": v.root, "id": v.node_id, "code": str(v.code), "message": v.message} for v in violations
        ]
        click.echo(json.dumps(payload, indent=2))
    elif violations:
        header(f"{len(violations)} violation(s) in {manager.model.__name__}")
        for violation in violations:
            warning(str(violation))
    else:
        success(f"{manager.model.__name__}: all trees are valid")

    if violations:
        sys.exit(1)


@tree.command()
@click.argument("model")
@click.option("--root", "root", type=int, default=None, help="Only show this tree")
@click.option("--key", "children_key", default=None, help="Key holding child nodes")
@coro
async def show(model: str, root: int | None, children_key: str | None) -> None:
    """Print the trees of MODEL as nested JSON."""
    manager = _manager(model)
    query = manager.query()
    if root is not None:
        query = query.where(manager.model.root == root)

    async with _session() as session:
        forest = await manager.as_tree(session, query, children_key)

    click.echo(json.dumps(forest, indent=2, default=str))
