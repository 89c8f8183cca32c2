"""
Utilities package for recordmap.

Exports shared helpers for logging and timestamps. Keep this package
lightweight and free of mapping logic.
"""

from recordmap.utils.clock import now_string
from recordmap.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "now_string",
]
