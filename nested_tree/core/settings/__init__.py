"""Modular Pydantic Settings v2 configuration.

One frozen settings model per domain (db/logging/tree), each read from
environment variables with its own prefix and cached by an LRU loader:

    from nested_tree.core.settings import get_tree_settings

    settings = get_tree_settings()
    print(settings.root_level)

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .database import DatabaseSettings
from .loader import (
    clear_settings_cache,
    get_db_settings,
    get_logging_settings,
    get_tree_settings,
)
from .logs import LoggingSettings
from .tree import TreeSettings

__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "TreeSettings",
    "clear_settings_cache",
    "get_db_settings",
    "get_logging_settings",
    "get_tree_settings",
]
