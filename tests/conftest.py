"""
Pytest configuration for rowstream.

Provides:
- In-memory fakes of the connection source and cursor driver for unit tests
  (they record an ordered event log: acquire, declare, close, release)
- Settings overrides with short timeouts
- Database fixtures for the opt-in integration suite
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

import psycopg
import pytest

from rowstream.config import Settings
from rowstream.errors import PoolExhausted


def make_rows(count: int) -> List[Dict[str, Any]]:
    return [{"id": index, "name": f"desk-{index % 7}", "row_number": index} for index in range(1, count + 1)]


class FakeConnection:
    def __init__(self, conn_id: int) -> None:
        self.conn_id = conn_id


class FakeSource:
    """
    Pool of `size` fake connections with a real acquire timeout.
    """

    def __init__(self, size: int, events: List[str]) -> None:
        self.size = size
        self.events = events
        self._idle = [FakeConnection(index) for index in range(size)]
        self.getconn_calls = 0
        self.putconn_calls = 0

    async def getconn(self, timeout: float) -> FakeConnection:
        self.getconn_calls += 1
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self._idle:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PoolExhausted(f"fake pool of {self.size} exhausted")
            await asyncio.sleep(min(remaining, 0.005))
        self.events.append("acquire")
        return self._idle.pop()

    async def putconn(self, conn: FakeConnection) -> None:
        self.putconn_calls += 1
        self.events.append("release")
        self._idle.append(conn)

    @property
    def available(self) -> int:
        return len(self._idle)


class FakeCursor:
    def __init__(self, driver: "FakeDriver", rows: Sequence[Dict[str, Any]]) -> None:
        self._driver = driver
        self._rows = list(rows)
        self._position = 0

    async def fetch(self, size: int) -> List[Dict[str, Any]]:
        driver = self._driver
        driver.pull_sizes.append(size)
        driver.in_flight += 1
        driver.max_in_flight = max(driver.max_in_flight, driver.in_flight)
        try:
            if driver.fetch_delay:
                await asyncio.sleep(driver.fetch_delay)
            if driver.fail_on_pull is not None and len(driver.pull_sizes) == driver.fail_on_pull:
                raise driver.pull_error
            batch = self._rows[self._position : self._position + size]
            self._position += len(batch)
            return batch
        finally:
            driver.in_flight -= 1

    async def close(self) -> None:
        self._driver.close_calls += 1
        self._driver.events.append("close")
        if self._driver.close_error is not None:
            raise self._driver.close_error


class FakeDriver:
    """
    Cursor driver over an in-memory row list.

    `fail_on_pull=n` makes the n-th fetch raise `pull_error`.
    """

    name = "fake"

    def __init__(
        self,
        rows: Sequence[Dict[str, Any]],
        events: List[str],
        *,
        fail_on_pull: Optional[int] = None,
        pull_error: Optional[BaseException] = None,
        declare_error: Optional[BaseException] = None,
        close_error: Optional[BaseException] = None,
        fetch_delay: float = 0.0,
    ) -> None:
        self.rows = list(rows)
        self.events = events
        self.fail_on_pull = fail_on_pull
        self.pull_error = pull_error or ConnectionResetError("connection reset by peer")
        self.declare_error = declare_error
        self.close_error = close_error
        self.fetch_delay = fetch_delay
        self.declared: List[tuple] = []
        self.pull_sizes: List[int] = []
        self.close_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def declare(
        self,
        conn: Any,
        query: str,
        params: Sequence[Any],
        *,
        cursor_name: str,
        statement_timeout_ms: int = 0,
    ) -> FakeCursor:
        self.declared.append((query, tuple(params), cursor_name, statement_timeout_ms))
        self.events.append("declare")
        if self.declare_error is not None:
            raise self.declare_error
        return FakeCursor(self, self.rows)

    def placeholder(self, position: int) -> str:
        return "%s"


@pytest.fixture
def events() -> List[str]:
    return []


@pytest.fixture
def source(events: List[str]) -> FakeSource:
    return FakeSource(size=2, events=events)


@pytest.fixture
def make_source(events: List[str]) -> Callable[..., FakeSource]:
    def _make(size: int = 2) -> FakeSource:
        return FakeSource(size=size, events=events)

    return _make


@pytest.fixture
def make_driver(events: List[str]) -> Callable[..., FakeDriver]:
    def _make(row_count: int = 0, **kwargs: Any) -> FakeDriver:
        return FakeDriver(make_rows(row_count), events, **kwargs)

    return _make


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with timeouts short enough for unit tests."""
    return Settings(
        pool_acquire_timeout=0.05,
        stream_batch_size=500,
        stream_stall_timeout=0.2,
        db_statement_timeout_ms=0,
    )


# -- integration ---------------------------------------------------------------


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        pool_min_size=1,
        pool_max_size=2,
        pool_acquire_timeout=1.0,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def seeded_items(db_connection: psycopg.Connection, test_dsn: str) -> int:
    """
    Seed a small desks/items dataset (1,234 items) once per session.

    Returns the number of items seeded.
    """
    from scripts.seed_data import _seed_db

    items = 1_234
    _seed_db(test_dsn, desks=10, items=items, seed=7)

    with db_connection.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM items;")
        count = cur.fetchone()[0]
    db_connection.commit()
    return count
