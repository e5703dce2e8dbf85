"""Shared modules for bosbase-installer.

This module provides functionality used by every stage:
- Logging configuration
- Well-known host and layout paths
"""

from .logging import configure_logging, get_logger
from .paths import (
    DEFAULT_INSTALL_DIR,
    PROJECT_NAME,
    UNIT_NAME,
    SystemPaths,
)

__all__ = [
    # Paths
    "DEFAULT_INSTALL_DIR",
    "PROJECT_NAME",
    "UNIT_NAME",
    "SystemPaths",
    # Logging
    "configure_logging",
    "get_logger",
]
