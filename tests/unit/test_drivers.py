from __future__ import annotations

from typing import Any, List, Optional, Tuple

import psycopg
import pytest

from rowstream.drivers import (
    AsyncpgCursorDriver,
    PsycopgCursorDriver,
    available_drivers,
    resolve_driver,
)
from rowstream.errors import QueryError, ReadError


class _PsycopgCursor:
    def __init__(self, rows: List[dict], execute_error: Optional[Exception] = None) -> None:
        self.rows = rows
        self.execute_error = execute_error
        self.executed: List[Tuple[str, tuple]] = []
        self.fetch_error: Optional[Exception] = None
        self.closed = False

    async def execute(self, query: str, params: tuple) -> None:
        self.executed.append((query, params))
        if self.execute_error is not None:
            raise self.execute_error

    async def fetchmany(self, size: int) -> List[dict]:
        if self.fetch_error is not None:
            raise self.fetch_error
        batch, self.rows = self.rows[:size], self.rows[size:]
        return batch

    async def close(self) -> None:
        self.closed = True


class _PsycopgConnection:
    def __init__(self, cursor: _PsycopgCursor) -> None:
        self._cursor = cursor
        self.cursor_kwargs: dict = {}
        self.executed: List[Tuple[str, Any]] = []
        self.rollbacks = 0

    def cursor(self, **kwargs: Any) -> _PsycopgCursor:
        self.cursor_kwargs = kwargs
        return self._cursor

    async def execute(self, query: str, params: Any = None) -> None:
        self.executed.append((query, params))

    async def rollback(self) -> None:
        self.rollbacks += 1


@pytest.mark.asyncio
async def test_psycopg_declares_named_cursor_with_timeout() -> None:
    cursor = _PsycopgCursor([{"id": 1}, {"id": 2}, {"id": 3}])
    conn = _PsycopgConnection(cursor)

    handle = await PsycopgCursorDriver().declare(
        conn, "SELECT * FROM items WHERE id > %s", [0], cursor_name="c1", statement_timeout_ms=1500
    )

    assert conn.cursor_kwargs["name"] == "c1"
    assert conn.executed == [("SELECT set_config('statement_timeout', %s, true)", ("1500",))]
    assert cursor.executed == [("SELECT * FROM items WHERE id > %s", (0,))]
    assert await handle.fetch(2) == [{"id": 1}, {"id": 2}]
    assert await handle.fetch(2) == [{"id": 3}]

    await handle.close()
    assert cursor.closed
    assert conn.rollbacks == 1


@pytest.mark.asyncio
async def test_psycopg_rejected_query_is_cleaned_up() -> None:
    cursor = _PsycopgCursor([], execute_error=psycopg.ProgrammingError("syntax error"))
    conn = _PsycopgConnection(cursor)

    with pytest.raises(QueryError) as excinfo:
        await PsycopgCursorDriver().declare(conn, "SELEC 1", (), cursor_name="c2")

    assert isinstance(excinfo.value.__cause__, psycopg.ProgrammingError)
    assert conn.executed == []
    assert cursor.closed
    assert conn.rollbacks == 1


@pytest.mark.asyncio
async def test_psycopg_fetch_failure_is_read_error() -> None:
    cursor = _PsycopgCursor([{"id": 1}])
    handle = await PsycopgCursorDriver().declare(
        _PsycopgConnection(cursor), "SELECT 1", (), cursor_name="c3"
    )
    cursor.fetch_error = psycopg.OperationalError("server closed the connection unexpectedly")

    with pytest.raises(ReadError):
        await handle.fetch(10)


class _Transaction:
    def __init__(self) -> None:
        self.started = False
        self.rolled_back = False

    async def start(self) -> None:
        self.started = True

    async def rollback(self) -> None:
        self.rolled_back = True


class _AsyncpgCursor:
    def __init__(self, rows: List[dict]) -> None:
        self.rows = rows
        self.fetch_error: Optional[Exception] = None

    async def fetch(self, size: int) -> List[dict]:
        if self.fetch_error is not None:
            raise self.fetch_error
        batch, self.rows = self.rows[:size], self.rows[size:]
        return batch


class _AsyncpgConnection:
    def __init__(self, rows: List[dict], cursor_error: Optional[Exception] = None) -> None:
        self.transactions: List[Tuple[_Transaction, dict]] = []
        self.executed: List[str] = []
        self.cursor_args: Optional[tuple] = None
        self.cursor_error = cursor_error
        self._cursor = _AsyncpgCursor(rows)

    def transaction(self, **kwargs: Any) -> _Transaction:
        transaction = _Transaction()
        self.transactions.append((transaction, kwargs))
        return transaction

    async def execute(self, query: str) -> None:
        self.executed.append(query)

    async def cursor(self, query: str, *args: Any) -> _AsyncpgCursor:
        self.cursor_args = (query, *args)
        if self.cursor_error is not None:
            raise self.cursor_error
        return self._cursor


@pytest.mark.asyncio
async def test_asyncpg_cursor_lives_in_readonly_transaction() -> None:
    conn = _AsyncpgConnection([{"id": 1}, {"id": 2}])

    handle = await AsyncpgCursorDriver().declare(
        conn, "SELECT * FROM items WHERE id > $1", (0,), cursor_name="ignored", statement_timeout_ms=200
    )

    transaction, kwargs = conn.transactions[0]
    assert kwargs == {"readonly": True}
    assert transaction.started
    assert conn.executed == ["SET LOCAL statement_timeout = 200"]
    assert conn.cursor_args == ("SELECT * FROM items WHERE id > $1", 0)
    assert await handle.fetch(5) == [{"id": 1}, {"id": 2}]

    await handle.close()
    assert transaction.rolled_back


@pytest.mark.asyncio
async def test_asyncpg_declare_failure_rolls_back() -> None:
    conn = _AsyncpgConnection([], cursor_error=OSError("connection lost"))

    with pytest.raises(QueryError):
        await AsyncpgCursorDriver().declare(conn, "SELECT 1", (), cursor_name="x")

    transaction, _ = conn.transactions[0]
    assert transaction.rolled_back
    assert conn.executed == []


@pytest.mark.asyncio
async def test_asyncpg_fetch_failure_is_read_error() -> None:
    conn = _AsyncpgConnection([{"id": 1}])
    handle = await AsyncpgCursorDriver().declare(conn, "SELECT 1", (), cursor_name="x")
    conn._cursor.fetch_error = OSError("connection lost")

    with pytest.raises(ReadError):
        await handle.fetch(1)


def test_placeholders_follow_driver_style() -> None:
    assert PsycopgCursorDriver().placeholder(3) == "%s"
    assert AsyncpgCursorDriver().placeholder(3) == "$3"


def test_driver_registry() -> None:
    assert available_drivers() == ["asyncpg", "psycopg"]
    assert resolve_driver("asyncpg").name == "asyncpg"
    with pytest.raises(ValueError):
        resolve_driver("sqlite")
