"""
Demo data seeding for rowstream.

(Re)creates the `desks` and `items` tables behind the demo queries and fills
them with deterministic pseudo-random rows loaded through Postgres COPY.
"""

from __future__ import annotations

import random
import sys
import time
from typing import Iterator, Tuple

import psycopg
import typer

from rowstream.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Create and fill the desks/items demo tables (COPY).")

SCHEMA_SQL = """
DROP TABLE IF EXISTS items;
DROP TABLE IF EXISTS desks;

CREATE TABLE desks (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL
);

CREATE TABLE items (
  id SERIAL PRIMARY KEY,
  desk_id INTEGER NOT NULL REFERENCES desks(id)
);
"""


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _generate_desks(desks: int, seed: int) -> Iterator[Tuple[str]]:
    rng = random.Random(seed)
    for _ in range(desks):
        yield (f"{rng.getrandbits(128):032x}",)


def _generate_items(items: int, desks: int, seed: int) -> Iterator[Tuple[int]]:
    rng = random.Random(seed + 1)
    for _ in range(items):
        yield (rng.randint(1, desks),)


def _seed_db(dsn: str, desks: int, items: int, seed: int) -> int:
    """Recreate the tables and COPY rows in. Returns the number of items loaded."""
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            with cur.copy("COPY desks (name) FROM STDIN") as copy:
                for row in _generate_desks(desks, seed):
                    copy.write_row(row)
            with cur.copy("COPY items (desk_id) FROM STDIN") as copy:
                for row in _generate_items(items, desks, seed):
                    copy.write_row(row)
            cur.execute("ANALYZE desks; ANALYZE items;")
        conn.commit()
    return items


@app.command()
def main(
    desks: int = typer.Option(1_000, "--desks", min=1, help="Number of desks to create."),
    items: int = typer.Option(
        1_000_000, "--items", "-n", min=0, help="Number of items to create."
    ),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Recreate the demo tables and load them with COPY.
    """
    start = time.perf_counter()
    typer.echo(f"Seeding {desks:,} desks and {items:,} items (seed={seed})")
    loaded = _seed_db(_build_dsn(dsn), desks=desks, items=items, seed=seed)
    duration = time.perf_counter() - start
    rate = loaded / duration if duration > 0 else 0.0
    typer.echo(f"Seeded {loaded:,} items in {duration:.2f}s ({rate:,.0f} rows/s).")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
