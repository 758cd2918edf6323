"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Testing:
    In tests, clear the cache to force reload:
    get_tree_settings.cache_clear()

    Or pass explicit instances where an API accepts them:
    TreeManager(Category, settings=TreeSettings(root_level=1))
"""

from __future__ import annotations

from functools import lru_cache

from .database import DatabaseSettings
from .logs import LoggingSettings
from .tree import TreeSettings


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_tree_settings() -> TreeSettings:
    """Get cached nested-set engine settings.

    Returns:
        Validated and frozen TreeSettings instance.
    """
    return TreeSettings()


def clear_settings_cache() -> None:
    """Clear every cached loader (useful in tests)."""
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_tree_settings.cache_clear()
