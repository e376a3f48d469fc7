"""
Connection source adapters over the two supported pool implementations.

Both expose `getconn(timeout)` / `putconn(conn)` / `available` and translate
the pool's own timeout signal into `PoolExhausted`, so the lease layer never
sees driver-specific exceptions.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import asyncpg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool, PoolTimeout, TooManyRequests

from rowstream.errors import PoolExhausted

# Upper bound for handing out an idle connection under a zero-wait policy.
_ZERO_WAIT_ACQUIRE_TIMEOUT = 0.05


class PsycopgPoolSource:
    """
    `psycopg_pool.AsyncConnectionPool` as a connection source.
    """

    driver_name: str = "psycopg"

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self.pool = pool

    async def getconn(self, timeout: float) -> AsyncConnection:
        try:
            return await self.pool.getconn(timeout=timeout)
        except (PoolTimeout, TooManyRequests) as exc:
            raise PoolExhausted(
                f"no connection available within {timeout}s (pool max_size={self.pool.max_size})"
            ) from exc

    async def putconn(self, conn: AsyncConnection) -> None:
        await self.pool.putconn(conn)

    @property
    def available(self) -> Optional[int]:
        return self.pool.get_stats().get("pool_available")

    async def close(self) -> None:
        await self.pool.close()


class AsyncpgPoolSource:
    """
    `asyncpg.Pool` as a connection source.

    asyncpg applies `timeout` with `asyncio.wait_for`. A zero timeout fails
    at once when no idle connection exists and never waits on a new
    connection being opened to grow the pool.
    """

    driver_name: str = "asyncpg"

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def getconn(self, timeout: float) -> Any:
        if timeout <= 0:
            # zero wait: only an already connected idle connection qualifies
            if self.pool.get_idle_size() == 0:
                raise PoolExhausted("no idle connection in the pool")
            timeout = _ZERO_WAIT_ACQUIRE_TIMEOUT
        try:
            return await self.pool.acquire(timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise PoolExhausted(f"no connection available within {timeout}s") from exc

    async def putconn(self, conn: Any) -> None:
        await self.pool.release(conn)

    @property
    def available(self) -> Optional[int]:
        return self.pool.get_idle_size()

    async def close(self) -> None:
        await self.pool.close()


__all__ = ["PsycopgPoolSource", "AsyncpgPoolSource"]
