"""
Connection leases.

A `Lease` is exclusive ownership of one pooled connection for the lifetime of
one streaming query. Ownership is handed back exactly once: `release()` drops
the lease's reference to the connection before returning it to the source, so
a second release (or any later use) raises `LeaseReleasedError` instead of
putting the same connection into the pool twice.
"""

from __future__ import annotations

import itertools
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from rowstream.errors import LeaseReleasedError, PoolExhausted
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_lease_ids = itertools.count(1)


@runtime_checkable
class ConnectionSource(Protocol):
    """
    Shared pool seen through the only two operations the core needs.

    `getconn` must raise `PoolExhausted` when no connection frees up within
    `timeout` seconds (`0` means do not wait).
    """

    async def getconn(self, timeout: float) -> Any:
        ...

    async def putconn(self, conn: Any) -> None:
        ...

    @property
    def available(self) -> Optional[int]:
        """Idle connections right now, or None when the pool cannot tell."""
        ...


class LeaseState(str, Enum):
    ACQUIRED = "acquired"
    RELEASED = "released"


class Lease:
    """One connection, owned by one stream."""

    def __init__(self, source: ConnectionSource, connection: Any, lease_id: int) -> None:
        self._source = source
        self._connection: Any = connection
        self.lease_id = lease_id

    @property
    def state(self) -> LeaseState:
        return LeaseState.ACQUIRED if self._connection is not None else LeaseState.RELEASED

    @property
    def connection(self) -> Any:
        if self._connection is None:
            raise LeaseReleasedError(f"lease {self.lease_id} was already released")
        return self._connection

    async def release(self) -> None:
        """Return the connection to its source. Valid once per lease."""
        if self._connection is None:
            raise LeaseReleasedError(f"lease {self.lease_id} was already released")
        conn, self._connection = self._connection, None
        await self._source.putconn(conn)
        log.debug("lease released", extra={"lease_id": self.lease_id})

    def __repr__(self) -> str:
        return f"Lease(id={self.lease_id}, state={self.state.value})"


class ConnectionLease:
    """
    Acquisition policy over a `ConnectionSource`.

    Parameters
    ----------
    source : ConnectionSource
        The shared pool.
    acquire_timeout : float
        Maximum seconds to wait for a free connection. Must be explicit and
        non-negative; `0` fails immediately when the pool is empty.
    """

    def __init__(self, source: ConnectionSource, acquire_timeout: float) -> None:
        if acquire_timeout is None or acquire_timeout < 0:
            raise ValueError("acquire_timeout must be a non-negative number of seconds")
        self.source = source
        self.acquire_timeout = acquire_timeout

    async def acquire(self, request_id: Optional[str] = None) -> Lease:
        """
        Lease one connection or raise `PoolExhausted`.
        """
        try:
            conn = await self.source.getconn(self.acquire_timeout)
        except PoolExhausted:
            log.warning(
                "pool exhausted",
                extra={"request_id": request_id, "acquire_timeout": self.acquire_timeout},
            )
            raise
        lease = Lease(self.source, conn, next(_lease_ids))
        log.debug("lease acquired", extra={"request_id": request_id, "lease_id": lease.lease_id})
        return lease


__all__ = ["ConnectionSource", "ConnectionLease", "Lease", "LeaseState"]
