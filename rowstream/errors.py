"""
Exception hierarchy for the row streaming core.

Every database failure surfaced by the core is one of these types, raised only
after the stream has released its cursor and connection. The driver exception
is always chained (`raise ... from exc`) so the root cause stays visible.
"""

from __future__ import annotations


class StreamError(Exception):
    """Base class for all streaming failures."""


class PoolExhausted(StreamError):
    """No connection became available within the configured acquire timeout."""


class QueryError(StreamError):
    """The database rejected the query or its parameters when the cursor was declared."""


class ReadError(StreamError):
    """A batch fetch (or cursor close) failed after the stream was opened."""


class SinkTimeout(StreamError):
    """The output transport did not accept more data within the stall timeout."""


class ConsumerAbort(StreamError):
    """
    Raised by a transport when its consumer went away (e.g., client disconnect).

    Never propagates past the sink adapter: it is a normal cancellation path.
    """


class LeaseReleasedError(RuntimeError):
    """A lease was used or released after its connection went back to the pool."""


__all__ = [
    "StreamError",
    "PoolExhausted",
    "QueryError",
    "ReadError",
    "SinkTimeout",
    "ConsumerAbort",
    "LeaseReleasedError",
]
