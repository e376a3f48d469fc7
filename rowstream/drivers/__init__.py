"""
Drivers package for rowstream.

Re-exports the driver interfaces and the concrete psycopg/asyncpg drivers so
downstream code can import from `rowstream.drivers` directly.
"""

from typing import Callable, Dict, List

from rowstream.drivers.abstract import AbstractCursorDriver, CursorDriver, DriverCursor
from rowstream.drivers.asyncpg_driver import AsyncpgCursorDriver
from rowstream.drivers.psycopg_driver import PsycopgCursorDriver


def _driver_factories() -> Dict[str, Callable[[], AbstractCursorDriver]]:
    """Registry of available drivers."""
    return {
        "psycopg": lambda: PsycopgCursorDriver(),
        "asyncpg": lambda: AsyncpgCursorDriver(),
    }


def available_drivers() -> List[str]:
    """List available driver names."""
    return sorted(_driver_factories().keys())


def resolve_driver(name: str) -> AbstractCursorDriver:
    factories = _driver_factories()
    if name not in factories:
        raise ValueError(f"Unknown driver '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


__all__ = [
    # Abstracts
    "AbstractCursorDriver",
    "CursorDriver",
    "DriverCursor",
    # Concrete drivers
    "AsyncpgCursorDriver",
    "PsycopgCursorDriver",
    # Registry
    "available_drivers",
    "resolve_driver",
]
