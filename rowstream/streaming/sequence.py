"""
Paced row sequence.

Adapts the pull-based chunked cursor reader into an async iterator of rows.
The sequence owns its lease and cursor handle, holds at most one batch
(`high_water_mark` rows) of lookahead, and only pulls the next batch once the
consumer has drained the buffer. Every terminal path runs the same teardown
exactly once, in this order: close the cursor, then release the lease.

Usage:
    async with PacedRowSequence(lease, reader, query, params) as rows:
        async for row in rows:
            ...

Terminal paths:
- end of data (short batch or row limit reached) -> completed
- `aclose()`, `async with` exit, `cancel()` (also mid-pull), task cancellation -> aborted
- declaration or fetch failure -> failed; the error is re-raised after teardown
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Deque, Optional, Sequence

from rowstream.domain.models import Row, StreamOutcome, StreamStats
from rowstream.errors import ReadError, StreamError
from rowstream.infrastructure.lease import Lease
from rowstream.streaming.cursor import ChunkedCursorReader, CursorHandle
from rowstream.utils.logging import get_logger

log = get_logger(__name__)


async def _abandon(*tasks: "asyncio.Future[Any]") -> None:
    """Cancel helper tasks and wait until they have finished unwinding."""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class PacedRowSequence:
    """
    Lazily produced, finite, non-restartable sequence of rows.

    Parameters
    ----------
    lease : Lease
        Connection ownership, transferred to the sequence.
    reader : ChunkedCursorReader
        Reader bound to the same lease.
    query, params
        Statement and bound parameters to declare the cursor with.
    high_water_mark : int
        Rows per pull and the maximum lookahead buffered ahead of the consumer.
    row_limit : int, optional
        Stop after this many rows even if the cursor has more.
    cancel_event : asyncio.Event, optional
        Set by the consumer side to stop the stream between rows or while a
        pull is in flight.
    request_id : str, optional
        Correlation id for log records.
    """

    def __init__(
        self,
        lease: Lease,
        reader: ChunkedCursorReader,
        query: str,
        params: Sequence[Any] = (),
        *,
        high_water_mark: int = 500,
        row_limit: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        request_id: Optional[str] = None,
    ) -> None:
        if high_water_mark <= 0:
            raise ValueError("high_water_mark must be positive")
        if row_limit is not None and row_limit < 0:
            raise ValueError("row_limit must be non-negative")
        self._lease: Optional[Lease] = lease
        self._reader = reader
        self._query = query
        self._params = tuple(params)
        self.high_water_mark = high_water_mark
        self.row_limit = row_limit
        self.cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self.request_id = request_id

        self._handle: Optional[CursorHandle] = None
        self._buffer: Deque[Row] = deque()
        self._delivered = 0
        self._outcome: Optional[StreamOutcome] = None
        self._started_at = time.perf_counter()
        self._finished_at: Optional[float] = None

    # -- state ----------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self._lease is None

    @property
    def outcome(self) -> Optional[StreamOutcome]:
        return self._outcome

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def pulls(self) -> int:
        return self._handle.pulls if self._handle is not None else 0

    @property
    def pull_sizes(self) -> list:
        return list(self._handle.pull_sizes) if self._handle is not None else []

    def stats(self) -> StreamStats:
        end = self._finished_at if self._finished_at is not None else time.perf_counter()
        return StreamStats(
            request_id=self.request_id,
            rows=self._delivered,
            pulls=self.pulls,
            outcome=self._outcome or StreamOutcome.ABORTED,
            duration_seconds=end - self._started_at,
        )

    def _remaining(self) -> Optional[int]:
        if self.row_limit is None:
            return None
        return self.row_limit - self._delivered

    def _drained(self) -> bool:
        if self._buffer:
            return False
        if self._remaining() == 0:
            return True
        return self._handle is not None and self._handle.exhausted

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """
        Declare the cursor now instead of on the first pull.

        Lets callers surface `QueryError` before emitting any output. The
        lease is released before the error propagates.
        """
        if self.finished:
            raise RuntimeError("sequence already terminated; open a new stream")
        if self._handle is not None:
            return
        try:
            self._handle = await self._reader.open(self._query, self._params)
        except BaseException:
            await self._teardown(StreamOutcome.FAILED, primary_error=True)
            raise

    def cancel(self) -> None:
        """Ask the sequence to stop; an in-flight pull is abandoned."""
        self.cancel_event.set()

    async def aclose(self, error: Optional[BaseException] = None) -> None:
        """
        Tear down now. No-op once the sequence has terminated.

        Pass the exception the caller is handling as `error`; a cursor close
        failure is then logged instead of replacing it.
        """
        outcome = StreamOutcome.COMPLETED if self._drained() else StreamOutcome.ABORTED
        await self._teardown(outcome, primary_error=error is not None)

    async def __aenter__(self) -> "PacedRowSequence":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose(exc)

    # -- iteration ------------------------------------------------------------

    def __aiter__(self) -> "PacedRowSequence":
        return self

    async def __anext__(self) -> Row:
        if self.finished:
            raise StopAsyncIteration
        if self.cancel_event.is_set():
            log.info("stream cancelled by consumer", extra={"request_id": self.request_id})
            await self._teardown(StreamOutcome.ABORTED)
            raise StopAsyncIteration
        if not self._buffer:
            if self._drained():
                await self._teardown(StreamOutcome.COMPLETED)
                raise StopAsyncIteration
            if not await self._fill():
                raise StopAsyncIteration
            if not self._buffer:
                await self._teardown(StreamOutcome.COMPLETED)
                raise StopAsyncIteration
        self._delivered += 1
        return self._buffer.popleft()

    async def _fill(self) -> bool:
        """
        Pull the next batch into the buffer.

        The pull races the cancellation event; returns False when the event
        won and the stream was torn down without waiting for the round trip.
        """
        await self.start()
        remaining = self._remaining()
        size = self.high_water_mark if remaining is None else min(self.high_water_mark, remaining)
        pull = asyncio.ensure_future(self._reader.pull(self._handle, size))  # type: ignore[arg-type]
        stop = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait({pull, stop}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            await _abandon(pull, stop)
            await self._teardown(StreamOutcome.ABORTED, primary_error=True)
            raise
        if not pull.done():
            log.info("stream cancelled during pull", extra={"request_id": self.request_id})
            # the reader closes the cursor when its pull is cancelled
            await _abandon(pull, stop)
            await self._teardown(StreamOutcome.ABORTED)
            return False
        stop.cancel()
        try:
            batch = pull.result()
        except StreamError:
            await self._teardown(StreamOutcome.FAILED, primary_error=True)
            raise
        except BaseException:
            await self._teardown(StreamOutcome.ABORTED, primary_error=True)
            raise
        self._buffer.extend(batch.rows)
        return True

    async def _teardown(self, outcome: StreamOutcome, primary_error: bool = False) -> None:
        lease, self._lease = self._lease, None
        if lease is None:
            return
        self._outcome = outcome
        self._finished_at = time.perf_counter()
        self._buffer.clear()

        close_error: Optional[ReadError] = None
        try:
            await self._reader.close(self._handle)
        except ReadError as exc:
            close_error = exc
            log.warning(
                "cursor close failed during teardown",
                extra={"request_id": self.request_id, "error": str(exc)},
            )
        finally:
            await lease.release()

        log.info(
            "stream finished",
            extra={
                "request_id": self.request_id,
                "outcome": outcome.value,
                "rows": self._delivered,
                "pulls": self.pulls,
            },
        )
        if close_error is not None and not primary_error:
            self._outcome = StreamOutcome.FAILED
            raise close_error


__all__ = ["PacedRowSequence"]
