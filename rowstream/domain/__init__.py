"""
Domain package for rowstream.

Exports the request/stats models shared by the streaming core, the service
layer and the CLI. Keep this package focused on data definitions and
validation concerns.
"""

from rowstream.domain.models import (
    Encoding,
    Row,
    StreamOutcome,
    StreamRequest,
    StreamStats,
)

__all__ = [
    "Encoding",
    "Row",
    "StreamOutcome",
    "StreamRequest",
    "StreamStats",
]
