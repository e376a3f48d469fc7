"""
Infrastructure package for rowstream.

Centralizes database connectivity concerns (pool factories, connection
sources, leases). Keep this layer focused on I/O and resource management,
decoupled from cursor and sink logic.
"""

from rowstream.infrastructure.db_factory import (
    build_dsn,
    connection_source,
    open_source,
)
from rowstream.infrastructure.lease import ConnectionLease, ConnectionSource, Lease, LeaseState
from rowstream.infrastructure.pools import AsyncpgPoolSource, PsycopgPoolSource

__all__ = [
    "AsyncpgPoolSource",
    "ConnectionLease",
    "ConnectionSource",
    "Lease",
    "LeaseState",
    "PsycopgPoolSource",
    "build_dsn",
    "connection_source",
    "open_source",
]
