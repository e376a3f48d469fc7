"""
rowstream - back-pressured PostgreSQL row streaming.

Pulls large result sets through server-side cursors in bounded batches and
exposes them as a paced async sequence of rows that:

- holds at most one batch (the high-water mark) of lookahead,
- fetches the next batch only when the consumer asks for more,
- closes its cursor and releases its pooled connection exactly once, whether
  the stream completes, fails, or the consumer walks away,

plus a sink adapter that encodes rows as a JSON array or NDJSON into a
transport with its own back-pressure.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from rowstream.config import Settings, get_settings
from rowstream.domain.models import Encoding, Row, StreamOutcome, StreamRequest, StreamStats
from rowstream.errors import (
    ConsumerAbort,
    LeaseReleasedError,
    PoolExhausted,
    QueryError,
    ReadError,
    SinkTimeout,
    StreamError,
)
from rowstream.infrastructure.db_factory import connection_source
from rowstream.infrastructure.lease import ConnectionLease, Lease
from rowstream.service import fetch_page, open_sequence, open_stream, stream_body, stream_query
from rowstream.streaming import (
    ChunkedCursorReader,
    FileTransport,
    PacedRowSequence,
    StreamWriterTransport,
    iter_encoded,
    write_to_transport,
)
from rowstream.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Models
    "Encoding",
    "Row",
    "StreamOutcome",
    "StreamRequest",
    "StreamStats",
    # Errors
    "ConsumerAbort",
    "LeaseReleasedError",
    "PoolExhausted",
    "QueryError",
    "ReadError",
    "SinkTimeout",
    "StreamError",
    # Connections
    "ConnectionLease",
    "Lease",
    "connection_source",
    # Streaming
    "ChunkedCursorReader",
    "FileTransport",
    "PacedRowSequence",
    "StreamWriterTransport",
    "iter_encoded",
    "write_to_transport",
    # Service
    "fetch_page",
    "open_sequence",
    "open_stream",
    "stream_body",
    "stream_query",
    # Logging
    "configure_logging",
    "get_logger",
]
