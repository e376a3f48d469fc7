"""
Sink adapter: incremental JSON encoding of a paced row sequence.

Two ways to drain a sequence:

- `write_to_transport` pushes into a transport with its own back-pressure
  (`drain()`); the next row is pulled only after the transport drained, so a
  slow client throttles database fetches instead of growing buffers.
- `iter_encoded` is an async byte iterator for frameworks that pull the
  response body themselves (ASGI streaming responses and the like).

A stream that fails after output started is never finished with closing
framing: the transport is aborted so the client sees a truncated response
rather than a well-formed, incomplete document.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, BinaryIO, List, Optional, Protocol, runtime_checkable
from uuid import UUID

from rowstream.domain.models import Encoding, Row, StreamOutcome, StreamStats
from rowstream.errors import ConsumerAbort, SinkTimeout
from rowstream.streaming.sequence import PacedRowSequence
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_CONSUMER_GONE = (ConsumerAbort, BrokenPipeError, ConnectionResetError)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_row(row: Row) -> bytes:
    """Serialize one row as compact JSON."""
    payload = row if isinstance(row, dict) else dict(row)
    return json.dumps(payload, default=_json_default, separators=(",", ":")).encode("utf-8")


class RowEncoder:
    """
    Stateful framing for one stream.

    JSON:   `[` `\\n<row>` (`,\\n<row>`)* `\\n]\\n`
    NDJSON: `<row>\\n` per row, no header or footer.
    """

    def __init__(self, encoding: Encoding = Encoding.JSON) -> None:
        self.encoding = Encoding(encoding)
        self._first = True

    @property
    def content_type(self) -> str:
        return self.encoding.content_type

    def header(self) -> bytes:
        return b"[" if self.encoding is Encoding.JSON else b""

    def encode(self, row: Row) -> bytes:
        body = encode_row(row)
        if self.encoding is Encoding.NDJSON:
            return body + b"\n"
        prefix = b"\n" if self._first else b",\n"
        self._first = False
        return prefix + body

    def footer(self) -> bytes:
        return b"\n]\n" if self.encoding is Encoding.JSON else b""


@runtime_checkable
class Transport(Protocol):
    """
    Output with back-pressure, shaped after `asyncio.StreamWriter`.

    `write` buffers; `drain` waits until the buffer is below the transport's
    own high-water mark. Transports raise `ConsumerAbort` (or
    `BrokenPipeError`/`ConnectionResetError`) when the consumer went away.
    """

    def write(self, data: bytes) -> None:
        ...

    async def drain(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def abort(self) -> None:
        ...


class StreamWriterTransport:
    """`asyncio.StreamWriter` (socket) transport."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self.writer = writer

    def write(self, data: bytes) -> None:
        if self.writer.is_closing():
            raise ConsumerAbort("peer closed the connection")
        self.writer.write(data)

    async def drain(self) -> None:
        try:
            await self.writer.drain()
        except (ConnectionResetError, BrokenPipeError) as exc:
            raise ConsumerAbort(str(exc)) from exc

    async def close(self) -> None:
        self.writer.close()
        await self.writer.wait_closed()

    def abort(self) -> None:
        self.writer.transport.abort()


class FileTransport:
    """
    Binary file transport (e.g., `sys.stdout.buffer`).

    `drain` flushes in a worker thread so a blocked pipe stalls this stream
    without stalling the event loop.
    """

    def __init__(self, stream: BinaryIO, close_stream: bool = False) -> None:
        self.stream = stream
        self.close_stream = close_stream
        self.aborted = False

    def write(self, data: bytes) -> None:
        self.stream.write(data)

    async def drain(self) -> None:
        await asyncio.to_thread(self.stream.flush)

    async def close(self) -> None:
        await asyncio.to_thread(self.stream.flush)
        if self.close_stream:
            self.stream.close()

    def abort(self) -> None:
        self.aborted = True
        if self.close_stream:
            self.stream.close()


async def _drain(
    transport: Transport, stall_timeout: Optional[float], cancel_event: asyncio.Event
) -> bool:
    """
    Wait for the transport to accept more data.

    Returns False when the consumer cancelled while waiting; raises
    `SinkTimeout` when `stall_timeout` elapsed first.
    """
    if cancel_event.is_set():
        return False
    drain = asyncio.ensure_future(transport.drain())
    stop = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {drain, stop}, timeout=stall_timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (drain, stop):
            if not task.done():
                task.cancel()
    if drain in done:
        drain.result()
        return True
    if stop in done:
        return False
    raise SinkTimeout(f"transport did not drain within {stall_timeout}s")


async def write_to_transport(
    sequence: PacedRowSequence,
    transport: Transport,
    encoding: Encoding = Encoding.JSON,
    *,
    stall_timeout: Optional[float] = None,
) -> StreamStats:
    """
    Encode `sequence` into `transport`, one row per drain.

    Returns the stream's stats; outcome `aborted` when the consumer went away
    or cancelled. Database errors and `SinkTimeout` propagate after teardown,
    with the transport aborted if any output was written.
    """
    encoder = RowEncoder(encoding)
    wrote = False
    try:
        await sequence.start()
        transport.write(encoder.header())
        wrote = True
        cancelled = False
        async for row in sequence:
            transport.write(encoder.encode(row))
            if not await _drain(transport, stall_timeout, sequence.cancel_event):
                log.info("stream cancelled while draining", extra={"request_id": sequence.request_id})
                await sequence.aclose()
                cancelled = True
                break
        if not cancelled and sequence.outcome is StreamOutcome.COMPLETED:
            transport.write(encoder.footer())
            await _drain(transport, stall_timeout, sequence.cancel_event)
            await transport.close()
        else:
            transport.abort()
    except _CONSUMER_GONE as exc:
        log.info(
            "consumer disconnected",
            extra={"request_id": sequence.request_id, "rows": sequence.delivered, "error": str(exc)},
        )
        await sequence.aclose()
        transport.abort()
    except BaseException as exc:
        await sequence.aclose(exc)
        # before any output the caller can still answer with an error
        if wrote:
            transport.abort()
        raise
    return sequence.stats()


class EncodedBody:
    """
    Async byte iterator over an encoded sequence, one chunk per fetched batch.

    The consumer's pace gates database pulls. `aclose()` tears the sequence
    down whether or not iteration ever started, so a body dropped before its
    first chunk (client gone between headers and body) still releases its
    connection.
    """

    def __init__(self, sequence: PacedRowSequence, encoding: Encoding = Encoding.JSON) -> None:
        self.sequence = sequence
        self._encoder = RowEncoder(encoding)
        self._started = False
        self._done = False

    @property
    def content_type(self) -> str:
        return self._encoder.content_type

    def __aiter__(self) -> "EncodedBody":
        return self

    async def __anext__(self) -> bytes:
        if self._done:
            raise StopAsyncIteration
        pending: List[bytes] = []
        if not self._started:
            self._started = True
            pending.append(self._encoder.header())
        try:
            async for row in self.sequence:
                pending.append(self._encoder.encode(row))
                if self.sequence.buffered == 0:
                    return b"".join(pending)
        except BaseException as exc:
            self._done = True
            await self.sequence.aclose(exc)
            raise
        self._done = True
        if self.sequence.outcome is StreamOutcome.COMPLETED:
            pending.append(self._encoder.footer())
            return b"".join(pending)
        # aborted: no closing framing, the response ends truncated
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self._done = True
        await self.sequence.aclose()


def iter_encoded(sequence: PacedRowSequence, encoding: Encoding = Encoding.JSON) -> EncodedBody:
    """
    Encoded stream for frameworks that pull the response body themselves.

    Iterate it to the end or `aclose()` it; both release the connection.
    """
    return EncodedBody(sequence, encoding)


__all__ = [
    "EncodedBody",
    "FileTransport",
    "RowEncoder",
    "StreamWriterTransport",
    "Transport",
    "encode_row",
    "iter_encoded",
    "write_to_transport",
]
