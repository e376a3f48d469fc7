from __future__ import annotations

import json
import logging

from rowstream.utils.logging import JsonFormatter, _json_formatter, configure_logging

EXPECTED_ROWS = 10
EXPECTED_BATCH_SIZE = 500


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.request_id = "req-42"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["request_id"] == "req-42"
    assert "pathname" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"batch_size": EXPECTED_BATCH_SIZE}

    payload = json.loads(_json_formatter(record))

    assert payload["batch_size"] == EXPECTED_BATCH_SIZE


def test_json_formatter_stringifies_unknown_values() -> None:
    record = _record()
    record.outcome = object()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["outcome"].startswith("<object object")


def test_configure_logging_keeps_existing_handlers_without_force() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(level="WARNING", json_logs=True)
        handlers = list(root.handlers)

        configure_logging(level="DEBUG", force=False)

        assert root.handlers == handlers
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
