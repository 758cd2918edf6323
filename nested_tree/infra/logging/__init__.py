"""Logging infrastructure.

Basic usage:
    import logging

    logger = logging.getLogger(__name__)
    logger.info("Rebuild finished", extra={"iterations": 3})

    # Lazy evaluation for expensive debug output
    from nested_tree.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Moved interval: {describe(node)}")
"""

from nested_tree.infra.logging.config import configure_logging, setup_logging
from nested_tree.infra.logging.formatters import JSONFormatter
from nested_tree.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "configure_logging",
    "get_lazy_logger",
    "setup_logging",
]
