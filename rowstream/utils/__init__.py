"""
Utilities package for rowstream.

Exports shared helpers for logging, profiling, and other cross-cutting concerns.
Keep this package lightweight and free of streaming logic.
"""

from rowstream.utils.logging import configure_logging, get_logger
from rowstream.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
