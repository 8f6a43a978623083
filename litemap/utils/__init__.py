"""
Utilities package for litemap.

Exports shared helpers for logging and profiling. Keep this package
lightweight and free of mapping logic.
"""

from litemap.utils.logging import configure_logging, get_logger
from litemap.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
