"""Tests for structured logging."""

import logging

from pagegen.core.logging import StructuredFormatter, get_logger, log_with_context


def _record(msg="hello", **attrs):
    record = logging.LogRecord("pagegen.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_formatter_key_values():
    """Base fields, run_id and extra_data are rendered as key=value pairs."""
    line = StructuredFormatter().format(
        _record(run_id="run-1", extra_data={"query_count": 3, "error_type": "TimeoutError"})
    )
    assert "level=INFO" in line
    assert "logger=pagegen.test" in line
    assert "message=hello" in line
    assert "run_id=run-1" in line
    assert "query_count=3" in line
    assert "error_type=TimeoutError" in line


def test_formatter_quotes_values_with_spaces():
    """Values containing whitespace are quoted."""
    line = StructuredFormatter().format(_record("two words", extra_data={"q": 'say "hi"'}))
    assert 'message="two words"' in line
    assert 'q="say \\"hi\\""' in line


def test_formatter_reserved_keys_prefixed():
    """Context keys never overwrite base fields."""
    line = StructuredFormatter().format(_record(extra_data={"message": "other"}))
    assert "message=hello" in line
    assert "ctx_message=other" in line


def test_get_logger_configured_once():
    """Repeated calls reuse the same handler."""
    logger = get_logger("pagegen.tests.once")
    assert get_logger("pagegen.tests.once") is logger
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, StructuredFormatter)


def test_log_with_context_routes_fields():
    """run_id goes on the record, everything else into extra_data."""
    logger = logging.getLogger("pagegen.tests.context")
    records = []

    class _Collect(logging.Handler):
        def emit(self, record):
            records.append(record)

    logger.addHandler(_Collect())
    logger.setLevel(logging.INFO)
    try:
        log_with_context(logger, logging.WARNING, "variant failed", run_id="r-9", query="q1")
    finally:
        logger.handlers.clear()

    (record,) = records
    assert record.run_id == "r-9"
    assert record.extra_data == {"query": "q1"}
    assert record.levelno == logging.WARNING
