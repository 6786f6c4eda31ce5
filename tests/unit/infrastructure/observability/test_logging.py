"""Tests for structured logging."""

import asyncio
import json
import logging
import sys

import pytest

from jellyradio.domain.exceptions import SetupError
from jellyradio.infrastructure.observability.logger_template import log_operation
from jellyradio.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CustomJsonFormatter,
    RunContextFilter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="jellyradio.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self) -> None:
        """Test setting and getting correlation ID."""
        test_id = "test-123-abc"
        result = set_correlation_id(test_id)
        assert result == test_id
        assert get_correlation_id() == test_id

    def test_set_correlation_id_generates_uuid_when_none(self) -> None:
        """Test that setting None generates a UUID."""
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    @pytest.mark.asyncio
    async def test_gathered_tasks_inherit_correlation_id(self) -> None:
        """Test that tasks spawned by gather see the caller's id."""
        set_correlation_id("run-42")

        async def read() -> str:
            await asyncio.sleep(0)
            return get_correlation_id()

        assert await asyncio.gather(read(), read()) == ["run-42", "run-42"]

    def test_filter_attaches_id(self) -> None:
        """Test the filter copies the id onto records."""
        set_correlation_id("filter-id")
        record = _record()

        assert RunContextFilter("radio-test").filter(record) is True
        assert record.correlation_id == "filter-id"  # type: ignore[attr-defined]
        assert record.app == "radio-test"  # type: ignore[attr-defined]


class TestFormatters:
    """Test JSON and compact formatters."""

    def test_json_formatter_fields(self) -> None:
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = _record("scan settled")
        record.correlation_id = "json-id"

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "scan settled"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "jellyradio.test"
        assert payload["correlation_id"] == "json-id"

    def test_compact_formatter_shows_root_cause_first(self) -> None:
        formatter = CompactExceptionFormatter()
        try:
            try:
                raise ConnectionError("connection refused")
            except ConnectionError as e:
                raise RuntimeError("playlist creation failed") from e
        except RuntimeError:
            text = formatter.formatException(sys.exc_info())

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == [
            "╰─► ConnectionError: connection refused",
            "╰─► RuntimeError: playlist creation failed",
        ]


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self) -> None:
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        logger = logging.getLogger("test")
        assert logger.getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_info_level(self) -> None:
        """Test configuring logging with INFO level."""
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        logger = logging.getLogger("test")
        assert logger.getEffectiveLevel() == logging.INFO

    def test_configure_logging_json_format(self) -> None:
        """Test configuring logging with JSON format."""
        configure_logging(log_level="INFO", json_format=True, app_name="test-app")
        root_logger = logging.getLogger()
        assert any(isinstance(h.formatter, CustomJsonFormatter) for h in root_logger.handlers)

    def test_reconfiguring_does_not_duplicate_handlers(self) -> None:
        """Test calling configure_logging twice keeps one handler."""
        configure_logging(log_level="INFO")
        configure_logging(log_level="INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_noisy_loggers_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestLogOperation:
    """Test the timed operation helper."""

    @pytest.mark.asyncio
    async def test_logs_start_and_completion(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("jellyradio.test.operation")

        with caplog.at_level(logging.INFO, logger="jellyradio.test.operation"):
            async with log_operation(logger, "radio_synthesis", seed="Daft Punk"):
                pass

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["radio_synthesis.started", "radio_synthesis.completed"]
        assert caplog.records[1].duration_ms >= 0  # type: ignore[attr-defined]
        assert caplog.records[0].seed == "Daft Punk"  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_logs_failure_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("jellyradio.test.operation")

        with caplog.at_level(logging.INFO, logger="jellyradio.test.operation"):
            with pytest.raises(ValueError):
                async with log_operation(logger, "radio_synthesis"):
                    raise ValueError("nope")

        failed = caplog.records[-1]
        assert failed.getMessage() == "radio_synthesis.failed"
        assert failed.error_type == "ValueError"  # type: ignore[attr-defined]
        assert failed.levelno == logging.ERROR
        assert failed.exc_info

    @pytest.mark.asyncio
    async def test_domain_failure_logged_as_warning_without_traceback(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = logging.getLogger("jellyradio.test.operation")

        with caplog.at_level(logging.INFO, logger="jellyradio.test.operation"):
            with pytest.raises(SetupError):
                async with log_operation(logger, "radio_synthesis"):
                    raise SetupError("Invalid authentication")

        failed = caplog.records[-1]
        assert failed.getMessage() == "radio_synthesis.failed"
        assert failed.levelno == logging.WARNING
        assert not failed.exc_info
        assert failed.error == "Invalid authentication"  # type: ignore[attr-defined]
