"""Tests for resumeai/logging/audit.py: JSON audit logging."""

import json
import logging
import sys

from resumeai.logging.audit import (
    AUDIT_LOGGER,
    JSONFormatter,
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    record_metric,
    request_id_var,
    setup_logging,
)


def _record(msg: str = "test", **kwargs) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="",
        lineno=0, msg=msg, args=(), exc_info=None, **kwargs,
    )


class TestJSONFormatter:

    def test_output_is_valid_json(self):
        parsed = json.loads(JSONFormatter().format(_record("hello")))
        assert parsed["message"] == "hello"
        assert parsed["level"] == "INFO"
        assert "timestamp" in parsed

    def test_includes_request_id(self):
        token = request_id_var.set("req-abc123")
        try:
            parsed = json.loads(JSONFormatter().format(_record()))
            assert parsed["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_includes_audit_data(self):
        record = _record()
        record.audit_data = {"user_id": "u1", "model": "gemini-2-flash"}
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["user_id"] == "u1"
        assert parsed["model"] == "gemini-2-flash"

    def test_empty_request_id_default(self):
        parsed = json.loads(JSONFormatter().format(_record()))
        assert parsed["request_id"] == ""

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        parsed = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in parsed["exception"]


class TestGenerateRequestId:

    def test_length(self):
        assert len(generate_request_id()) == 12

    def test_uniqueness(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100

    def test_hex_chars_only(self):
        rid = generate_request_id()
        assert all(c in "0123456789abcdef" for c in rid)


class TestRequestTimer:

    def test_measures_elapsed(self):
        with RequestTimer() as timer:
            _ = sum(range(1000))
        assert timer.elapsed_ms > 0
        assert isinstance(timer.elapsed_ms, float)


class TestRecordMetric:

    def test_emits_metric_event(self, caplog):
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER):
            record_metric("analysis_cache_hit", user_id="u1")
        record = caplog.records[-1]
        assert record.getMessage() == "Metric recorded"
        assert record.audit_data == {"metric": "analysis_cache_hit", "value": 1, "user_id": "u1"}


class TestSetupLogging:

    def test_creates_stdout_handler(self, override_settings):
        override_settings(AUDIT_LOG_FILE="")
        setup_logging()
        logger = logging.getLogger("resumeai")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert get_audit_logger().name == AUDIT_LOGGER

    def test_adds_file_handler(self, override_settings, tmp_path):
        override_settings(AUDIT_LOG_FILE=str(tmp_path / "audit.log"))
        setup_logging()
        logger = logging.getLogger("resumeai")
        try:
            assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()
