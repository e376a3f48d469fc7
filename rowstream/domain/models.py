"""
Domain models for rowstream.

`StreamRequest` is what an upstream caller (HTTP handler, CLI) hands to the
stream service; `StreamStats` is what it gets back once a stream terminates.
Rows themselves are opaque mappings and are never validated here.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

Row = Mapping[str, Any]


class Encoding(str, Enum):
    """Output framing produced by the sink adapter."""

    JSON = "json"
    NDJSON = "ndjson"

    @property
    def content_type(self) -> str:
        if self is Encoding.NDJSON:
            return "application/x-ndjson"
        return "application/json"


class StreamOutcome(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class StreamRequest(BaseModel):
    """
    Parameters of one streaming query.

    `query` uses the placeholder style of the configured driver (`%s` for
    psycopg, `$1` for asyncpg).
    """

    query: str = Field(..., min_length=1, description="Parameterized SELECT statement.")
    params: Tuple[Any, ...] = Field(default=(), description="Bound parameters.")
    batch_size: int = Field(500, gt=0, description="Rows per round trip (high-water mark).")
    row_limit: Optional[int] = Field(None, ge=0, description="Cap on total rows delivered.")
    encoding: Encoding = Field(Encoding.JSON, description="Output framing.")
    request_id: Optional[str] = Field(None, description="Correlation id used in logs.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


@dataclass
class StreamStats:
    """
    Summary of one terminated stream.
    """

    request_id: Optional[str]
    rows: int
    pulls: int
    outcome: StreamOutcome
    duration_seconds: float

    @property
    def throughput_rows_per_sec(self) -> float:
        return self.rows / self.duration_seconds if self.duration_seconds > 0 else 0.0

    def as_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "rows": self.rows,
            "pulls": self.pulls,
            "outcome": self.outcome.value,
            "duration_seconds": round(self.duration_seconds, 3),
            "throughput_rows_per_sec": round(self.throughput_rows_per_sec, 2),
        }


__all__ = ["Row", "Encoding", "StreamOutcome", "StreamRequest", "StreamStats"]
