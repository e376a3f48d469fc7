"""
Streaming core for rowstream.

Leaves first: the chunked cursor reader, the paced row sequence built on it,
and the sink adapter that encodes a sequence into a transport.
"""

from rowstream.streaming.cursor import Batch, ChunkedCursorReader, CursorHandle, CursorState
from rowstream.streaming.sequence import PacedRowSequence
from rowstream.streaming.sink import (
    EncodedBody,
    FileTransport,
    RowEncoder,
    StreamWriterTransport,
    Transport,
    encode_row,
    iter_encoded,
    write_to_transport,
)

__all__ = [
    "Batch",
    "ChunkedCursorReader",
    "CursorHandle",
    "CursorState",
    "EncodedBody",
    "FileTransport",
    "PacedRowSequence",
    "RowEncoder",
    "StreamWriterTransport",
    "Transport",
    "encode_row",
    "iter_encoded",
    "write_to_transport",
]
