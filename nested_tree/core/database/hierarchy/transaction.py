"""Transaction boundary and lock scopes for tree mutations.

Every shift-and-place sequence must commit or roll back as one unit, and
concurrent mutations of the same tree must not interleave. Both concerns
are expressed here so the engines only ever ask for "a transaction over
these trees".

Transactions:
    - No open transaction: a new one is begun and committed on exit
      (rolled back on error).
    - Caller already inside a transaction: the mutation joins it, or opens
      a SAVEPOINT when ``TreeSettings.use_savepoints`` is enabled. The
      caller owns the commit.

Locks:
    On PostgreSQL, transaction-scoped advisory locks keyed by table name and
    root value serialize writers of one tree until the enclosing transaction
    ends. Per-tree writers also hold the table key in shared mode; repair
    and rebuild hold it exclusively. Root allocation has its own key. The
    acquisition order is always table key, root keys (sorted), allocation
    key. Other dialects rely on their own write serialization (SQLite
    allows a single writer).
"""

from __future__ import annotations

import hashlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from nested_tree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from nested_tree.core.settings import TreeSettings

_lazy = get_lazy_logger(__name__)

TABLE_SCOPE = "*"
ALLOCATION_SCOPE = "root-allocation"


@asynccontextmanager
async def tree_transaction(
    session: AsyncSession,
    settings: TreeSettings,
) -> AsyncGenerator[AsyncSession]:
    """Run a block of tree statements atomically.

    Args:
        session: Session the statements run on
        settings: Tree settings (savepoint behaviour)

    Yields:
        The same session
    """
    if not session.in_transaction():
        async with session.begin():
            yield session
        return

    if settings.use_savepoints:
        async with session.begin_nested():
            yield session
        return

    yield session


def lock_key(table: str, scope: Any) -> int:
    """Derive a signed 64-bit advisory lock key for a table scope."""
    digest = hashlib.blake2b(f"{table}:{scope}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _locks_enabled(session: AsyncSession, settings: TreeSettings) -> bool:
    return settings.use_advisory_locks and session.get_bind().dialect.name == "postgresql"


async def _advisory_lock(session: AsyncSession, key: int, *, shared: bool = False) -> None:
    lock = func.pg_advisory_xact_lock_shared if shared else func.pg_advisory_xact_lock
    _lazy.debug(lambda: f"tree.lock: key={key} shared={shared}")
    await session.execute(select(lock(key)))


async def lock_table(session: AsyncSession, table: str, settings: TreeSettings) -> None:
    """Take the table-wide lock exclusively (repair, rebuild)."""
    if _locks_enabled(session, settings):
        await _advisory_lock(session, lock_key(table, TABLE_SCOPE))


async def lock_roots(
    session: AsyncSession,
    table: str,
    roots: Iterable[Any],
    settings: TreeSettings,
) -> None:
    """Serialize writers of the given trees for the rest of the transaction.

    The table-wide lock is taken in shared mode first, so per-tree
    mutations run in parallel with each other but never alongside a
    table-wide repair.
    """
    if not _locks_enabled(session, settings):
        return

    await _advisory_lock(session, lock_key(table, TABLE_SCOPE), shared=True)
    for key in sorted({lock_key(table, root) for root in roots if root is not None}):
        await _advisory_lock(session, key)


async def lock_allocation(session: AsyncSession, table: str, settings: TreeSettings) -> None:
    """Serialize new root identifier allocation for the table."""
    if _locks_enabled(session, settings):
        await _advisory_lock(session, lock_key(table, ALLOCATION_SCOPE))
