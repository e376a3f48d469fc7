"""
asyncpg cursor driver.

asyncpg cursors only live inside a transaction and have no explicit close;
the driver opens a read-only transaction per cursor and rolls it back on
close, which drops the portal server-side.
"""

from __future__ import annotations

from typing import Any, List, Sequence

import asyncpg

from rowstream.domain.models import Row
from rowstream.drivers.abstract import AbstractCursorDriver
from rowstream.errors import QueryError, ReadError
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class AsyncpgCursor:
    def __init__(self, transaction: Any, cursor: Any) -> None:
        self._transaction = transaction
        self._cursor = cursor

    async def fetch(self, size: int) -> List[Row]:
        try:
            records = await self._cursor.fetch(size)
        except _DRIVER_ERRORS as exc:
            raise ReadError(f"fetch of {size} rows failed: {exc}") from exc
        return [dict(record) for record in records]

    async def close(self) -> None:
        try:
            await self._transaction.rollback()
        except _DRIVER_ERRORS as exc:
            raise ReadError(f"could not end cursor transaction: {exc}") from exc


class AsyncpgCursorDriver(AbstractCursorDriver):
    """
    Transaction-bound cursors over an asyncpg connection.
    """

    name: str = "asyncpg"

    async def declare(
        self,
        conn: Any,
        query: str,
        params: Sequence[Any],
        *,
        cursor_name: str,
        statement_timeout_ms: int = 0,
    ) -> AsyncpgCursor:
        del cursor_name  # asyncpg names its portals itself
        transaction = conn.transaction(readonly=True)
        await transaction.start()
        try:
            if statement_timeout_ms:
                await conn.execute(f"SET LOCAL statement_timeout = {int(statement_timeout_ms)}")
            cursor = await conn.cursor(query, *params)
        except _DRIVER_ERRORS as exc:
            try:
                await transaction.rollback()
            except _DRIVER_ERRORS as cleanup_exc:
                log.warning(
                    "rollback after failed declaration failed", extra={"error": str(cleanup_exc)}
                )
            raise QueryError(f"cursor declaration failed: {exc}") from exc
        return AsyncpgCursor(transaction, cursor)

    def placeholder(self, position: int) -> str:
        return f"${position}"


__all__ = ["AsyncpgCursorDriver", "AsyncpgCursor"]
