"""
Chunked cursor reader.

Binds one server-side cursor to a leased connection and pulls rows from it in
bounded batches on demand. A batch shorter than requested is the only
exhaustion signal; the reader never issues a pull it was not asked for.

Handle lifecycle:

    open ──pull──> reading ──short batch──> exhausted
      │               │                        │
      └───────────────┴──close / failed pull───┴──> closed
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from rowstream.domain.models import Row
from rowstream.drivers.abstract import CursorDriver, DriverCursor
from rowstream.errors import QueryError, ReadError, StreamError
from rowstream.infrastructure.lease import Lease
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_cursor_ids = itertools.count(1)


class CursorState(str, Enum):
    OPEN = "open"
    READING = "reading"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


@dataclass(frozen=True)
class Batch:
    """Rows fetched in one round trip."""

    rows: Tuple[Row, ...]
    requested: int

    @property
    def short(self) -> bool:
        return len(self.rows) < self.requested

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class CursorHandle:
    """
    A declared server-side cursor bound to the reader's lease.
    """

    name: str
    state: CursorState = CursorState.OPEN
    rows_read: int = 0
    pull_sizes: List[int] = field(default_factory=list)
    _cursor: Optional[DriverCursor] = field(default=None, repr=False)
    _pulling: bool = field(default=False, repr=False)

    @property
    def pulls(self) -> int:
        return len(self.pull_sizes)

    @property
    def exhausted(self) -> bool:
        return self.state is CursorState.EXHAUSTED

    @property
    def closed(self) -> bool:
        return self.state is CursorState.CLOSED


class ChunkedCursorReader:
    """
    Pull-based access to one query's result set over a leased connection.

    Parameters
    ----------
    driver : CursorDriver
        Declares cursors and fetches from them.
    lease : Lease
        Connection owner; the reader never releases it.
    statement_timeout_ms : int
        Transaction-local statement timeout applied on open (0 = server default).
    """

    def __init__(
        self,
        driver: CursorDriver,
        lease: Lease,
        statement_timeout_ms: int = 0,
        request_id: Optional[str] = None,
    ) -> None:
        self.driver = driver
        self.lease = lease
        self.statement_timeout_ms = statement_timeout_ms
        self.request_id = request_id
        self._handle: Optional[CursorHandle] = None

    async def open(self, query: str, params: Sequence[Any] = ()) -> CursorHandle:
        """
        Declare the cursor without fetching rows.

        Raises
        ------
        QueryError
            The database rejected the query or its parameters.
        """
        if self._handle is not None and not self._handle.closed:
            raise RuntimeError(f"cursor {self._handle.name} is still open on this lease")

        handle = CursorHandle(name=f"rowstream_{self.lease.lease_id}_{next(_cursor_ids)}")
        try:
            handle._cursor = await self.driver.declare(
                self.lease.connection,
                query,
                params,
                cursor_name=handle.name,
                statement_timeout_ms=self.statement_timeout_ms,
            )
        except QueryError:
            handle.state = CursorState.CLOSED
            log.warning(
                "cursor declaration rejected",
                extra={"request_id": self.request_id, "cursor": handle.name},
            )
            raise
        self._handle = handle
        log.debug(
            "cursor open",
            extra={"request_id": self.request_id, "cursor": handle.name, "driver": self.driver.name},
        )
        return handle

    async def pull(self, handle: CursorHandle, size: int) -> Batch:
        """
        Fetch up to `size` rows in one round trip.

        A short batch moves the handle to `exhausted`. Pulling from an
        exhausted handle returns an empty batch without touching the database.

        Raises
        ------
        ReadError
            The fetch failed; the handle is closed and must not be pulled again.
        """
        if size <= 0:
            raise ValueError("pull size must be positive")
        if handle.closed:
            raise ReadError(f"cursor {handle.name} is closed")
        if handle.exhausted:
            return Batch(rows=(), requested=size)
        if handle._pulling:
            raise RuntimeError(f"cursor {handle.name} already has a pull in flight")

        handle._pulling = True
        handle.state = CursorState.READING
        handle.pull_sizes.append(size)
        try:
            rows = await handle._cursor.fetch(size)  # type: ignore[union-attr]
        except StreamError:
            await self._close_after_failure(handle)
            raise
        except Exception as exc:
            await self._close_after_failure(handle)
            raise ReadError(f"fetch from cursor {handle.name} failed: {exc}") from exc
        except BaseException:
            # cancelled mid round trip; the cursor position is unknown
            await self._close_after_failure(handle)
            raise
        finally:
            handle._pulling = False

        if len(rows) > size:
            await self._close_after_failure(handle)
            raise ReadError(f"driver returned {len(rows)} rows for a pull of {size}")

        batch = Batch(rows=tuple(rows), requested=size)
        handle.rows_read += len(batch)
        if batch.short:
            handle.state = CursorState.EXHAUSTED
        log.debug(
            "batch pulled",
            extra={
                "request_id": self.request_id,
                "cursor": handle.name,
                "requested": size,
                "rows": len(batch),
            },
        )
        return batch

    async def close(self, handle: Optional[CursorHandle]) -> None:
        """
        Release server-side cursor resources. Safe to call more than once.

        Raises
        ------
        ReadError
            The driver failed to close the cursor (the handle is closed anyway).
        """
        if handle is None or handle.closed:
            return
        handle.state = CursorState.CLOSED
        cursor, handle._cursor = handle._cursor, None
        if cursor is not None:
            try:
                await cursor.close()
            except StreamError:
                raise
            except Exception as exc:
                raise ReadError(f"close of cursor {handle.name} failed: {exc}") from exc
        log.debug(
            "cursor closed",
            extra={"request_id": self.request_id, "cursor": handle.name, "rows": handle.rows_read},
        )

    async def _close_after_failure(self, handle: CursorHandle) -> None:
        try:
            await self.close(handle)
        except ReadError as exc:
            log.warning(
                "cursor close after failed pull also failed",
                extra={"request_id": self.request_id, "cursor": handle.name, "error": str(exc)},
            )


__all__ = ["Batch", "ChunkedCursorReader", "CursorHandle", "CursorState"]
