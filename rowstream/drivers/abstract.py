"""
Cursor driver interfaces for rowstream.

A driver turns a leased connection into a server-side cursor and back. The
chunked cursor reader only ever talks to these two protocols, so the
streaming core is independent of psycopg/asyncpg specifics.

Driver contract:
- `declare` runs the query up to cursor declaration without fetching rows and
  raises `QueryError` when the database rejects it.
- `fetch(n)` returns at most `n` rows; fewer than `n` means the result set is
  exhausted (PostgreSQL `FETCH FORWARD n` guarantees this). Failures raise
  `ReadError`.
- `close()` releases server-side resources and ends the transaction the
  cursor lives in. Failures raise `ReadError`.
"""

from __future__ import annotations

import abc
from typing import Any, List, Protocol, Sequence, runtime_checkable

from rowstream.domain.models import Row


@runtime_checkable
class DriverCursor(Protocol):
    """An open server-side cursor."""

    async def fetch(self, size: int) -> List[Row]:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class CursorDriver(Protocol):
    """
    Common interface all cursor drivers implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    async def declare(
        self,
        conn: Any,
        query: str,
        params: Sequence[Any],
        *,
        cursor_name: str,
        statement_timeout_ms: int = 0,
    ) -> DriverCursor:
        """
        Declare a read-only cursor for `query` on `conn`.

        Parameters
        ----------
        conn : Any
            A connection owned by the caller's lease.
        query : str
            Parameterized statement in the driver's placeholder style.
        params : Sequence[Any]
            Bound parameters.
        cursor_name : str
            Server-side cursor name (ignored by drivers that pick their own).
        statement_timeout_ms : int
            Transaction-local statement timeout; 0 leaves the server default.
        """
        ...

    def placeholder(self, position: int) -> str:
        """Placeholder for the 1-based parameter `position`."""
        ...


class AbstractCursorDriver(abc.ABC):
    """
    Optional ABC helper for class-based drivers.
    """

    name: str

    @abc.abstractmethod
    async def declare(
        self,
        conn: Any,
        query: str,
        params: Sequence[Any],
        *,
        cursor_name: str,
        statement_timeout_ms: int = 0,
    ) -> DriverCursor:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def placeholder(self, position: int) -> str:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = ["AbstractCursorDriver", "CursorDriver", "DriverCursor"]
