from time import sleep

from rowstream import config
from rowstream.domain.models import Encoding, StreamOutcome, StreamStats
from rowstream.drivers import available_drivers
from rowstream.utils import profiler
from scripts import seed_data


def test_get_settings_defaults():
    settings = config.Settings(_env_file=None)
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_user == "postgres"
    assert settings.db_name == "postgres"
    assert settings.db_driver == "psycopg"
    assert settings.stream_batch_size == 500
    assert settings.stream_row_limit is None
    assert settings.pool_acquire_timeout > 0


def test_settings_accept_field_names_and_aliases():
    by_name = config.Settings(_env_file=None, pool_max_size=3)
    by_alias = config.Settings(_env_file=None, POOL_MAX_SIZE=4)
    assert by_name.pool_max_size == 3
    assert by_alias.pool_max_size == 4


def test_profile_block_measures_time():
    with profiler.profile_block("sleep") as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    assert stats.peak_rss_bytes is None or stats.peak_rss_bytes > 0
    if stats.cpu_percent is not None:
        assert isinstance(stats.cpu_percent, float)


def test_available_drivers_contains_known_entries():
    names = available_drivers()
    assert "psycopg" in names
    assert "asyncpg" in names


def test_stream_stats_throughput():
    stats = StreamStats(
        request_id=None, rows=1000, pulls=3, outcome=StreamOutcome.COMPLETED, duration_seconds=2.0
    )
    assert stats.throughput_rows_per_sec == 500.0
    assert stats.as_dict()["rows"] == 1000
    assert Encoding.NDJSON.content_type == "application/x-ndjson"


def test_seed_generators_are_deterministic():
    desks = list(seed_data._generate_desks(5, seed=123))
    assert desks == list(seed_data._generate_desks(5, seed=123))
    assert all(len(name) == 32 for (name,) in desks)

    items = list(seed_data._generate_items(100, desks=5, seed=123))
    assert items == list(seed_data._generate_items(100, desks=5, seed=123))
    assert all(1 <= desk_id <= 5 for (desk_id,) in items)
