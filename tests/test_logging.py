"""Tests for structured logging configuration."""

import json
import logging
import sys

from agentgate.app.core.config import Settings
from agentgate.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        """Rate limit context fields are promoted to the top level."""
        record = make_record("Rate limit exceeded")
        record.request_id = "req-1"
        record.identifier = "ip:1.2.3.4"
        record.limiter = "chat"
        record.retry_after = 42

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["identifier"] == "ip:1.2.3.4"
        assert data["limiter"] == "chat"
        assert data["retry_after"] == 42
        assert "extra" not in data

    def test_json_format_with_extra_fields(self):
        record = make_record("Custom event")
        record.custom_field = "custom_value"
        record.another_field = 42

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"]["custom_field"] == "custom_value"
        assert data["extra"]["another_field"] == 42

    def test_none_context_fields_omitted(self):
        record = make_record()
        ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert "request_id" not in data
        assert "identifier" not in data

    def test_json_format_with_exception(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            record = make_record("Error occurred", logging.ERROR, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        exception_text = "".join(data["exception"])
        assert "ValueError" in exception_text
        assert "Test error" in exception_text

    def test_json_format_unicode(self):
        data = json.loads(JSONFormatter().format(make_record("Unicode message: 你好世界")))
        assert "你好世界" in data["message"]


class TestContextFilter:
    """Test context filter for adding default fields."""

    def test_adds_default_fields(self):
        record = make_record()

        assert ContextFilter().filter(record) is True
        assert record.request_id is None
        assert record.identifier is None
        assert record.limiter is None

    def test_preserves_existing_values(self):
        record = make_record()
        record.identifier = "user:42"

        ContextFilter().filter(record)

        assert record.identifier == "user:42"


class TestGetLoggingConfig:
    """Test logging configuration generation."""

    def test_default_text_format(self):
        config = get_logging_config(Settings(_env_file=None, log_format="text"))

        assert "standard" in config["formatters"]
        assert "structured" in config["formatters"]
        assert "json" not in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "standard"

    def test_structured_format(self):
        config = get_logging_config(
            Settings(_env_file=None, log_format="structured", log_level="debug")
        )

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert config["handlers"]["console"]["level"] == "DEBUG"

    def test_json_format(self):
        config = get_logging_config(
            Settings(_env_file=None, log_format="JSON", log_level="WARNING")
        )

        assert "json" in config["formatters"]
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["handlers"]["console"]["level"] == "WARNING"

    def test_context_filter_added(self):
        config = get_logging_config(Settings(_env_file=None))

        assert "context" in config["filters"]
        assert "context" in config["handlers"]["console"]["filters"]
        assert config["loggers"]["agentgate"]["propagate"] is False


class TestGetLogger:
    def test_get_logger_default_name(self):
        assert get_logger().name == "agentgate"

    def test_get_logger_custom_name(self):
        assert get_logger("custom.module").name == "custom.module"


class TestGetLogContext:
    """Test get_log_context helper function."""

    def test_basic_context(self):
        context = get_log_context(request_id="req-1", identifier="ip:1.2.3.4", limiter="api")
        assert context == {"request_id": "req-1", "identifier": "ip:1.2.3.4", "limiter": "api"}

    def test_context_filters_none(self):
        context = get_log_context(identifier="user:1", limiter=None, retry_after=None)
        assert context == {"identifier": "user:1"}

    def test_context_with_extra(self):
        context = get_log_context(identifier="user:1", limit=20, path="/api/chat")
        assert context["limit"] == 20
        assert context["path"] == "/api/chat"


class TestIntegration:
    """Integration tests for logging system."""

    def test_json_logging_output(self, capsys):
        setup_logging(Settings(_env_file=None, log_format="json", log_level="INFO"))
        logger = get_logger("agentgate.test.integration")

        logger.warning(
            "Rate limit exceeded",
            extra=get_log_context(identifier="ip:203.0.113.7", limiter="chat", retry_after=12),
        )

        data = json.loads(capsys.readouterr().out.strip())

        assert data["level"] == "WARNING"
        assert data["logger"] == "agentgate.test.integration"
        assert data["message"] == "Rate limit exceeded"
        assert data["identifier"] == "ip:203.0.113.7"
        assert data["limiter"] == "chat"
        assert data["retry_after"] == 12
