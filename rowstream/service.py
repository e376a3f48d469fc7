"""
Stream service for rowstream.

Wires a connection source, a cursor driver and the streaming core together
for one `StreamRequest`. This is the surface an upstream request handler
calls; it never touches pool internals beyond lease acquire/release.

Usage (example from an async handler):
    from rowstream.service import stream_body

    content_type, body = await stream_body(source, StreamRequest(query=..., params=(...)))
    return StreamingResponse(body, media_type=content_type)

Connection and query failures (`PoolExhausted`, `QueryError`) are raised by
the call itself, before any byte of output exists; failures after that point
surface from the body iterator or the transport writer.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple

from rowstream.config import Settings, get_settings
from rowstream.domain.models import Row, StreamRequest, StreamStats
from rowstream.drivers import CursorDriver, resolve_driver
from rowstream.infrastructure.lease import ConnectionLease, ConnectionSource
from rowstream.streaming.cursor import ChunkedCursorReader
from rowstream.streaming.sequence import PacedRowSequence
from rowstream.streaming.sink import EncodedBody, Transport, iter_encoded, write_to_transport
from rowstream.utils.logging import get_logger

log = get_logger(__name__)


async def open_sequence(
    source: ConnectionSource,
    request: StreamRequest,
    *,
    driver: Optional[CursorDriver] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> PacedRowSequence:
    """
    Lease a connection and declare the request's cursor.

    The returned sequence owns the lease; iterate it to the end or `aclose()`
    it. Raises `PoolExhausted` or `QueryError` with nothing left open.
    """
    settings = settings or get_settings()
    driver = driver or resolve_driver(settings.db_driver)
    lease = await ConnectionLease(source, settings.pool_acquire_timeout).acquire(request.request_id)
    try:
        reader = ChunkedCursorReader(
            driver,
            lease,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            request_id=request.request_id,
        )
        sequence = PacedRowSequence(
            lease,
            reader,
            request.query,
            request.params,
            high_water_mark=request.batch_size,
            row_limit=request.row_limit,
            cancel_event=cancel_event,
            request_id=request.request_id,
        )
    except Exception:
        await lease.release()
        raise
    log.info(
        "stream opened",
        extra={
            "request_id": request.request_id,
            "driver": driver.name,
            "batch_size": request.batch_size,
            "row_limit": request.row_limit,
        },
    )
    await sequence.start()
    return sequence


@asynccontextmanager
async def open_stream(
    source: ConnectionSource,
    request: StreamRequest,
    *,
    driver: Optional[CursorDriver] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[PacedRowSequence]:
    """
    Scope-bound sequence: the cursor is closed and the lease released on exit.

    Example
    -------
        async with open_stream(source, request) as rows:
            async for row in rows:
                ...
    """
    sequence = await open_sequence(
        source, request, driver=driver, settings=settings, cancel_event=cancel_event
    )
    async with sequence:
        yield sequence


async def stream_query(
    source: ConnectionSource,
    request: StreamRequest,
    transport: Transport,
    *,
    driver: Optional[CursorDriver] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> StreamStats:
    """
    Stream the request's rows into `transport` using the request's encoding.
    """
    settings = settings or get_settings()
    sequence = await open_sequence(
        source, request, driver=driver, settings=settings, cancel_event=cancel_event
    )
    return await write_to_transport(
        sequence, transport, request.encoding, stall_timeout=settings.stream_stall_timeout
    )


async def stream_body(
    source: ConnectionSource,
    request: StreamRequest,
    *,
    driver: Optional[CursorDriver] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> Tuple[str, EncodedBody]:
    """
    Content type and body iterator for a streamed HTTP response.

    The caller must iterate the body to the end or `aclose()` it, including
    when the client disconnects before the first chunk.
    """
    sequence = await open_sequence(
        source, request, driver=driver, settings=settings, cancel_event=cancel_event
    )
    return request.encoding.content_type, iter_encoded(sequence, request.encoding)


def paged_query(driver: CursorDriver, query: str, first_position: int) -> str:
    """Wrap `query` with OFFSET/LIMIT placeholders starting at `first_position`."""
    offset_ph = driver.placeholder(first_position)
    limit_ph = driver.placeholder(first_position + 1)
    return f"SELECT * FROM ({query.strip().rstrip(';')}) AS page OFFSET {offset_ph} LIMIT {limit_ph}"


async def fetch_page(
    source: ConnectionSource,
    query: str,
    params: Sequence[Any] = (),
    *,
    offset: int = 0,
    limit: int = 50_000,
    driver: Optional[CursorDriver] = None,
    settings: Optional[Settings] = None,
    request_id: Optional[str] = None,
) -> List[Row]:
    """
    One-shot OFFSET/LIMIT read, fully buffered.

    The non-streaming counterpart of `stream_query`, for callers that page
    through a result themselves. Memory grows with `limit`.
    """
    if offset < 0:
        raise ValueError("offset must be non-negative")
    if limit <= 0:
        raise ValueError("limit must be positive")
    settings = settings or get_settings()
    driver = driver or resolve_driver(settings.db_driver)
    request = StreamRequest(
        query=paged_query(driver, query, len(params) + 1),
        params=(*params, offset, limit),
        batch_size=limit,
        row_limit=limit,
        request_id=request_id,
    )
    async with open_stream(source, request, driver=driver, settings=settings) as rows:
        return [row async for row in rows]


__all__ = [
    "fetch_page",
    "open_sequence",
    "open_stream",
    "paged_query",
    "stream_body",
    "stream_query",
]
