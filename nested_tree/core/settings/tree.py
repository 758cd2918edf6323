"""Nested-set engine settings."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TreeSettings(BaseSettings):
    """Behaviour switches for the nested-set mutation and repair engines.

    Environment variables use TREE_ prefix.
    Example: TREE_ROOT_LEVEL=0, TREE_REBUILD_MAX_PASSES=500
    """

    root_level: int = Field(
        default=0,
        ge=0,
        description="Level assigned to root nodes. Every generation below adds 1.",
    )
    children_key: str = Field(
        default="items",
        min_length=1,
        description="Default key holding child mappings in materialized trees.",
    )
    rebuild_max_passes: int = Field(
        default=1000,
        ge=1,
        description="Upper bound on rebuild passes before the tree is declared inconsistent.",
    )
    use_advisory_locks: bool = Field(
        default=True,
        description="Serialize mutations per root with advisory locks (PostgreSQL only).",
    )
    use_savepoints: bool = Field(
        default=False,
        description="Wrap each mutation in a SAVEPOINT when the caller already holds a transaction.",
    )

    model_config = SettingsConfigDict(
        env_prefix="TREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
