"""
Tests for structured logging helpers.
"""

import io
import json
import logging
import sys

from clipboard_sync.logging_utils import (
    SessionLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
    get_sync_logger,
)


def make_record(msg="hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="clipboard_sync.ledger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    def test_basic_fields(self):
        output = json.loads(StructuredJsonFormatter().format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "clipboard_sync.ledger"
        assert output["message"] == "hello world"
        assert "timestamp" in output

    def test_extra_fields_included(self):
        record = make_record(session_code="AB12C", version=3)
        output = json.loads(StructuredJsonFormatter().format(record))

        assert output["session_code"] == "AB12C"
        assert output["version"] == 3
        assert "pathname" not in output

    def test_sensitive_extras_dropped(self):
        record = make_record(
            session_code="AB12C", ciphertext="blob", link_token="Q1W2E3R4T5Y6U7I8"
        )
        output = json.loads(StructuredJsonFormatter().format(record))

        assert output["session_code"] == "AB12C"
        assert "ciphertext" not in output
        assert "link_token" not in output

    def test_extras_do_not_override_fixed_fields(self):
        record = make_record(level="forged")
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["level"] == "INFO"

    def test_timestamp_is_record_time(self):
        record = make_record()
        record.created = 0.0
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["timestamp"] == "1970-01-01T00:00:00+00:00"

    def test_unserializable_extra_is_stringified(self):
        record = make_record(mode=object())
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["mode"].startswith("<object object")

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        output = json.loads(StructuredJsonFormatter().format(record))
        assert "RuntimeError: boom" in output["exception"]


class TestLoggers:
    def test_get_sync_logger_namespace(self):
        assert get_sync_logger("relay").name == "clipboard_sync.relay"

    def test_configure_structured_logging(self):
        logger = configure_structured_logging(logging.DEBUG, "clipboard_sync.test_configure")
        try:
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 1
            assert isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)

            configure_structured_logging(logging.INFO, "clipboard_sync.test_configure")
            assert len(logger.handlers) == 1
        finally:
            logger.handlers.clear()

    def test_configure_structured_logging_stream(self):
        stream = io.StringIO()
        logger = configure_structured_logging(logging.INFO, "clipboard_sync.test_stream", stream)
        logger.propagate = False
        try:
            logger.info("Pruned", extra={"session_code": "AB12C", "ciphertext": "blob"})
        finally:
            logger.handlers.clear()
            logger.propagate = True

        line = json.loads(stream.getvalue())
        assert line["message"] == "Pruned"
        assert line["session_code"] == "AB12C"
        assert "blob" not in stream.getvalue()

    def test_session_adapter_adds_context(self, caplog):
        adapter = SessionLoggerAdapter(
            logging.getLogger("clipboard_sync.test_adapter"), {"session_code": "AB12C"}
        )

        with caplog.at_level(logging.INFO, logger="clipboard_sync.test_adapter"):
            adapter.info("Appended version", extra={"version": 3})

        record = caplog.records[-1]
        assert record.session_code == "AB12C"
        assert record.version == 3
