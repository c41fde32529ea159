"""
Tests for logging setup and structured logging.
"""

import json
import logging
import sys

import pytest

from fleetback.exceptions import TransferError
from fleetback.observability.structured_logging import (
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    log_backup_end,
    log_error,
)
from fleetback.utils.logging import FileFormatter, _parse_level, setup_logging


def make_record(msg="Test message", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    """Tests for the correlation id context."""

    def test_unset_by_default(self):
        assert get_correlation_id() is None

    def test_context_manager_sets_and_resets(self):
        with add_correlation_id("alpha-1234") as cid:
            assert cid == "alpha-1234"
            assert get_correlation_id() == "alpha-1234"
        assert get_correlation_id() is None

    def test_auto_generated(self):
        with add_correlation_id() as cid:
            assert len(cid) == 8


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_format_basic(self):
        data = json.loads(StructuredFormatter().format(make_record()))
        assert data["message"] == "Test message"
        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert "timestamp" in data
        assert "correlation_id" not in data

    def test_format_with_correlation_id(self):
        with add_correlation_id("test_correlation"):
            data = json.loads(StructuredFormatter().format(make_record()))
        assert data["correlation_id"] == "test_correlation"

    def test_format_with_exception(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(StructuredFormatter().format(make_record(level=logging.ERROR, exc_info=exc_info)))
        assert data["exception"]["type"] == "ValueError"
        assert "Test error" in data["exception"]["message"]

    def test_format_with_extra_fields(self):
        formatter = StructuredFormatter(extra_fields={"service": "fleetback"})
        data = json.loads(formatter.format(make_record(kind="Transfer", host="alpha")))
        assert data["service"] == "fleetback"
        assert data["kind"] == "Transfer"
        assert data["host"] == "alpha"


class TestFileFormatter:
    """Tests for the plain-text file formatter."""

    def test_appends_kind_and_host(self):
        line = FileFormatter().format(make_record(kind="FS", host="alpha"))
        assert line.endswith("[kind=FS host=alpha]")

    def test_plain_line(self):
        line = FileFormatter().format(make_record())
        assert "Test message" in line
        assert "[kind=" not in line


class TestLogHelpers:
    """Tests for log_error and backup start/end helpers."""

    def test_log_error_backup_error(self, caplog):
        log_error(TransferError("connection reset", host="alpha", path="/etc/hosts"))

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.kind == "Transfer"
        assert record.host == "alpha"
        assert record.path == "/etc/hosts"
        assert record.getMessage() == "[Transfer] alpha: connection reset"

    def test_log_error_unexpected(self, caplog):
        log_error(RuntimeError("boom"), host="beta")

        record = caplog.records[-1]
        assert record.kind == "Unexpected"
        assert record.host == "beta"
        assert "RuntimeError: boom" in record.getMessage()
        assert record.exc_info is not None

    def test_log_error_level(self, caplog):
        log_error(TransferError("x"), level=logging.WARNING)
        assert caplog.records[-1].levelno == logging.WARNING

    def test_log_backup_end_success(self, caplog):
        with caplog.at_level(logging.INFO, logger="fleetback"):
            log_backup_end("alpha", success=True, duration=1.23456, transferred=4)

        record = caplog.records[-1]
        assert record.event == "backup.end"
        assert record.success is True
        assert record.duration_seconds == 1.235
        assert record.transferred == 4


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.mark.parametrize(
        "level,expected",
        [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), (logging.ERROR, logging.ERROR), ("nope", logging.INFO)],
    )
    def test_parse_level(self, level, expected):
        assert _parse_level(level) == expected

    def test_json_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "fleetback.log"
        logger = setup_logging("INFO", log_file=log_file, json_format=True, console_enabled=False)
        try:
            logging.getLogger("fleetback.test").info("hello", extra={"host": "alpha"})
            for handler in logger.handlers:
                handler.flush()

            data = json.loads(log_file.read_text().strip().splitlines()[-1])
            assert data["message"] == "hello"
            assert data["host"] == "alpha"
        finally:
            setup_logging("INFO")

    def test_text_file_handler(self, tmp_path):
        log_file = tmp_path / "fleetback.log"
        logger = setup_logging("INFO", log_file=log_file, console_enabled=False)
        try:
            logging.getLogger("fleetback.test").warning("careful", extra={"kind": "Missing"})
            for handler in logger.handlers:
                handler.flush()

            line = log_file.read_text().strip().splitlines()[-1]
            assert "careful" in line
            assert "[kind=Missing]" in line
        finally:
            setup_logging("INFO")
