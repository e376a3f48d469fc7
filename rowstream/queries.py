"""
Demo queries over the `desks`/`items` tables created by `scripts/seed_data.py`.

Written with psycopg placeholders; `for_driver` rewrites them for asyncpg.
"""

from __future__ import annotations

import re

ITEMS_QUERY = """
  SELECT items.id, desks.name, row_number() OVER (ORDER BY items.id) AS row_number
  FROM items
  INNER JOIN desks ON desks.id = items.desk_id
"""

# One second of server-side latency before the first row, to make pacing visible.
SLOW_ITEMS_QUERY = """
  WITH start_time AS (SELECT pg_sleep(1) AS start_time)
  SELECT items.id, desks.name, row_number() OVER (ORDER BY items.id) AS row_number
  FROM items
  INNER JOIN desks ON desks.id = items.desk_id
  CROSS JOIN start_time
"""

_PSYCOPG_PLACEHOLDER = re.compile(r"%s")


def for_driver(query: str, driver_name: str) -> str:
    """Rewrite `%s` placeholders to `$1..$n` for asyncpg."""
    if driver_name != "asyncpg":
        return query
    counter = iter(range(1, query.count("%s") + 1))
    return _PSYCOPG_PLACEHOLDER.sub(lambda _: f"${next(counter)}", query)


__all__ = ["ITEMS_QUERY", "SLOW_ITEMS_QUERY", "for_driver"]
