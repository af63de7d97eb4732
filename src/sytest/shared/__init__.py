"""Shared modules for sytest.

This module provides functionality used across the orchestrator:
- Logging setup (structlog on top of the stdlib root logger)
"""

from .logging import configure_logging, get_logger, level_for_verbosity

__all__ = [
    "configure_logging",
    "get_logger",
    "level_for_verbosity",
]
