"""
psycopg 3 cursor driver.

Uses a named (server-side) cursor: `execute` sends `DECLARE ... CURSOR FOR`
inside the connection's implicit transaction and `fetchmany(n)` sends
`FETCH FORWARD n`. Closing the cursor also rolls the read-only transaction
back so the connection goes back to the pool idle.
"""

from __future__ import annotations

from typing import Any, List, Sequence

import psycopg
from psycopg import AsyncConnection, AsyncServerCursor
from psycopg.rows import dict_row

from rowstream.domain.models import Row
from rowstream.drivers.abstract import AbstractCursorDriver
from rowstream.errors import QueryError, ReadError
from rowstream.utils.logging import get_logger

log = get_logger(__name__)


async def _discard(conn: AsyncConnection, cursor: AsyncServerCursor) -> None:
    """Clean up after a failed DECLARE; the declaration error takes precedence."""
    try:
        await cursor.close()
        await conn.rollback()
    except psycopg.Error as exc:
        log.warning("cleanup after failed declaration failed", extra={"error": str(exc)})


class PsycopgCursor:
    def __init__(self, conn: AsyncConnection, cursor: AsyncServerCursor) -> None:
        self._conn = conn
        self._cursor = cursor

    async def fetch(self, size: int) -> List[Row]:
        try:
            return await self._cursor.fetchmany(size)
        except psycopg.Error as exc:
            raise ReadError(f"fetch of {size} rows failed: {exc}") from exc

    async def close(self) -> None:
        # On failure the pool rolls back or discards the connection when it is returned.
        try:
            await self._cursor.close()
            await self._conn.rollback()
        except psycopg.Error as exc:
            raise ReadError(f"could not close cursor: {exc}") from exc


class PsycopgCursorDriver(AbstractCursorDriver):
    """
    Server-side cursors over a psycopg `AsyncConnection`.
    """

    name: str = "psycopg"

    async def declare(
        self,
        conn: AsyncConnection,
        query: str,
        params: Sequence[Any],
        *,
        cursor_name: str,
        statement_timeout_ms: int = 0,
    ) -> PsycopgCursor:
        cursor = conn.cursor(name=cursor_name, row_factory=dict_row)
        try:
            if statement_timeout_ms:
                await conn.execute(
                    "SELECT set_config('statement_timeout', %s, true)",
                    (str(int(statement_timeout_ms)),),
                )
            await cursor.execute(query, tuple(params))
        except psycopg.Error as exc:
            await _discard(conn, cursor)
            raise QueryError(f"cursor declaration failed: {exc}") from exc
        return PsycopgCursor(conn, cursor)

    def placeholder(self, position: int) -> str:
        return "%s"


__all__ = ["PsycopgCursorDriver", "PsycopgCursor"]
