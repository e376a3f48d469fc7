"""
Database connection factory utilities for rowstream.

Builds the DSN from settings and opens the shared connection pool behind a
`ConnectionSource`. Opening a pool is retried with tenacity for transient
connection failures; acquiring from an open pool is never retried (that is the
lease layer's explicit timeout policy).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Union

import asyncpg
import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rowstream.config import Settings, get_settings
from rowstream.infrastructure.pools import AsyncpgPoolSource, PsycopgPoolSource
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

PoolSource = Union[PsycopgPoolSource, AsyncpgPoolSource]


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, PoolTimeout)),
    reraise=True,
)
async def open_psycopg_source(
    dsn: str, min_size: int = 1, max_size: int = 20, open_timeout: float = 10.0
) -> PsycopgPoolSource:
    """
    Open a psycopg async pool and wait until `min_size` connections are ready.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Raises
    ------
    psycopg.OperationalError
        If the pool cannot be filled after all retry attempts.
    """
    pool = AsyncConnectionPool(conninfo=dsn, min_size=min_size, max_size=max_size, open=False)
    try:
        await pool.open(wait=True, timeout=open_timeout)
    except Exception:
        await pool.close()
        raise
    log.info("psycopg pool open", extra={"min_size": min_size, "max_size": max_size})
    return PsycopgPoolSource(pool)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def open_asyncpg_source(
    dsn: str, min_size: int = 1, max_size: int = 20, open_timeout: float = 10.0
) -> AsyncpgPoolSource:
    """
    Open an asyncpg pool.

    Retries up to 3 times with exponential backoff for transient connection errors.
    """
    pool = await asyncpg.create_pool(
        dsn, min_size=min_size, max_size=max_size, timeout=open_timeout
    )
    log.info("asyncpg pool open", extra={"min_size": min_size, "max_size": max_size})
    return AsyncpgPoolSource(pool)


async def open_source(settings: Optional[Settings] = None, dsn: Optional[str] = None) -> PoolSource:
    """
    Open the pool selected by `settings.db_driver`.
    """
    settings = settings or get_settings()
    dsn = dsn or build_dsn(settings)
    opener = open_asyncpg_source if settings.db_driver == "asyncpg" else open_psycopg_source
    return await opener(
        dsn,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open_timeout=settings.pool_open_timeout,
    )


@asynccontextmanager
async def connection_source(
    settings: Optional[Settings] = None, dsn: Optional[str] = None
) -> AsyncIterator[PoolSource]:
    """
    Context manager owning a pool for the duration of a block.

    Example
    -------
        async with connection_source() as source:
            stats = await stream_query(source, request, transport)
    """
    source = await open_source(settings, dsn)
    try:
        yield source
    finally:
        await source.close()


__all__ = [
    "PoolSource",
    "build_dsn",
    "connection_source",
    "open_asyncpg_source",
    "open_psycopg_source",
    "open_source",
]
