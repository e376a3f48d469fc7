from __future__ import annotations

import asyncio
import json
import sys
import uuid
from typing import List, Optional

import typer

from rowstream.config import Settings, get_settings
from rowstream.domain.models import Encoding, StreamRequest, StreamStats
from rowstream.drivers import available_drivers, resolve_driver
from rowstream.errors import StreamError
from rowstream.infrastructure.db_factory import connection_source
from rowstream.queries import ITEMS_QUERY, SLOW_ITEMS_QUERY, for_driver
from rowstream.reporter import print_stream_stats
from rowstream.service import fetch_page, stream_query
from rowstream.streaming.sink import FileTransport, encode_row
from rowstream.utils.logging import configure_logging
from rowstream.utils.profiler import profile_block

app = typer.Typer(help="Stream PostgreSQL result sets as JSON with bounded memory.")


def _setup() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


def _resolve_query(query: Optional[str], slow: bool, driver_name: str) -> str:
    if query:
        return query
    return for_driver(SLOW_ITEMS_QUERY if slow else ITEMS_QUERY, driver_name)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"driver={settings.db_driver} ({', '.join(available_drivers())} available) | "
        f"pool=({settings.pool_min_size},{settings.pool_max_size}) "
        f"acquire_timeout={settings.pool_acquire_timeout}s | "
        f"batch={settings.stream_batch_size} limit={settings.stream_row_limit} "
        f"stall_timeout={settings.stream_stall_timeout}s"
    )


@app.command()
def stream(
    query: Optional[str] = typer.Argument(
        None, help="SELECT to stream. Defaults to the demo items query."
    ),
    params: List[str] = typer.Option(
        [], "--param", "-p", help="Bound parameter, repeatable, passed as text."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", help="Rows per round trip (default from settings)."
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", help="Stop after this many rows (default from settings)."
    ),
    output_format: Encoding = typer.Option(
        Encoding.JSON, "--format", "-f", help="Output framing: json array or ndjson."
    ),
    slow: bool = typer.Option(False, "--slow", help="Use the demo query with a 1s server delay."),
    stats: bool = typer.Option(False, "--stats", help="Print a summary table to stderr."),
) -> None:
    """
    Stream a query's rows to stdout without buffering the result set.
    """
    settings = _setup()
    request = StreamRequest(
        query=_resolve_query(query, slow, settings.db_driver),
        params=tuple(params),
        batch_size=batch_size or settings.stream_batch_size,
        row_limit=limit if limit is not None else settings.stream_row_limit,
        encoding=output_format,
        request_id=uuid.uuid4().hex[:12],
    )

    async def _run() -> StreamStats:
        async with connection_source(settings) as source:
            transport = FileTransport(sys.stdout.buffer)
            return await stream_query(source, request, transport, settings=settings)

    try:
        with profile_block("stream") as profile:
            result = asyncio.run(_run())
    except StreamError as exc:
        typer.echo(f"Stream failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if stats:
        print_stream_stats(result, profile, batch_size=request.batch_size)


@app.command()
def page(
    query: Optional[str] = typer.Argument(
        None, help="SELECT to page through. Defaults to the demo items query."
    ),
    params: List[str] = typer.Option([], "--param", "-p", help="Bound parameter, repeatable."),
    offset: int = typer.Option(0, "--offset", "-o", min=0, help="Rows to skip."),
    limit: int = typer.Option(50_000, "--limit", "-l", min=1, help="Rows to return."),
) -> None:
    """
    Fetch one OFFSET/LIMIT page and print it as a JSON array.
    """
    settings = _setup()
    driver = resolve_driver(settings.db_driver)
    sql = _resolve_query(query, False, driver.name)

    async def _run() -> list:
        async with connection_source(settings) as source:
            return await fetch_page(
                source, sql, tuple(params), offset=offset, limit=limit, driver=driver, settings=settings
            )

    try:
        rows = asyncio.run(_run())
    except StreamError as exc:
        typer.echo(f"Page fetch failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo("[" + ",".join(encode_row(row).decode("utf-8") for row in rows) + "]")
    typer.echo(json.dumps({"offset": offset, "limit": limit, "rows": len(rows)}), err=True)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
