from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from rowstream.domain.models import StreamOutcome, StreamStats
from rowstream.utils.profiler import ProfileStats

_OUTCOME_STYLES = {
    StreamOutcome.COMPLETED: "green",
    StreamOutcome.ABORTED: "yellow",
    StreamOutcome.FAILED: "red",
}


def print_stream_stats(
    stats: StreamStats,
    profile: Optional[ProfileStats] = None,
    batch_size: Optional[int] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render one stream's summary as a rich table.

    Printed to stderr by default so it never mixes with streamed rows on stdout.
    """
    console = console or Console(stderr=True)

    title = "rowstream"
    if stats.request_id:
        title = f"{title}\n[dim]request {stats.request_id}[/dim]"

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Outcome", no_wrap=True)
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Pulls", justify="right", style="blue")
    if batch_size:
        table.add_column("Batch", justify="right", style="blue")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Throughput (rows/s)", justify="right", style="bold green")
    table.add_column("Peak Memory (MB)", justify="right", style="yellow")
    table.add_column("CPU %", justify="right", style="red")

    style = _OUTCOME_STYLES.get(stats.outcome, "white")
    row = [f"[{style}]{stats.outcome.value}[/{style}]", f"{stats.rows:,}", str(stats.pulls)]
    if batch_size:
        row.append(f"{batch_size:,}")

    mem_str = "N/A"
    cpu_str = "N/A"
    if profile is not None:
        if profile.peak_rss_bytes:
            mem_str = f"{profile.peak_rss_bytes / (1024 * 1024):.2f}"
        if profile.cpu_percent is not None:
            cpu_str = f"{profile.cpu_percent:.1f}"

    row.extend(
        [
            f"{stats.duration_seconds:.2f}",
            f"{stats.throughput_rows_per_sec:,.2f}",
            mem_str,
            cpu_str,
        ]
    )
    table.add_row(*row)
    console.print(table)


__all__ = ["print_stream_stats"]
