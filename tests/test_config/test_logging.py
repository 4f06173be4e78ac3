"""Testes para config.logging.

Cobre: configure_logging, get_logger, SyncContextFilter,
create_json_formatter.
"""

from __future__ import annotations

import json
import logging

import pytest

from config.logging import (
    FIELD_RENAME_MAP,
    REQUIRED_LOG_FIELDS,
    SyncContextFilter,
    configure_logging,
    create_json_formatter,
    get_logger,
)
from config.logging.config import DEFAULT_SERVICE_NAME, VALID_LOG_LEVELS


def _record(msg: str = "msg", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestConfigureLogging:
    """Testes para configure_logging."""

    def test_configure_logging_default_level(self) -> None:
        configure_logging()
        assert logging.getLogger().level == logging.INFO

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("ERROR", logging.ERROR)],
    )
    def test_configure_logging_levels(self, level: str, expected: int) -> None:
        """Nível é case insensitive."""
        configure_logging(level=level)
        assert logging.getLogger().level == expected

    def test_configure_logging_invalid_level_raises(self) -> None:
        with pytest.raises(ValueError, match="Nível de log inválido"):
            configure_logging(level="INVALID")

    def test_configure_logging_replaces_handlers(self) -> None:
        root = logging.getLogger()
        root.handlers = [logging.NullHandler(), logging.NullHandler()]
        configure_logging()
        assert len(root.handlers) == 1

    def test_handler_carries_sync_context_filter(self) -> None:
        configure_logging(correlation_id_getter=lambda: "corr-1", connection_id_getter=lambda: "conn-1")
        handler = logging.getLogger().handlers[0]
        assert any(isinstance(f, SyncContextFilter) for f in handler.filters)

    def test_noisy_libraries_are_quieted(self) -> None:
        configure_logging(level="DEBUG")
        assert logging.getLogger("googleapiclient.discovery_cache").level == logging.WARNING

    def test_constants(self) -> None:
        assert {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} == VALID_LOG_LEVELS
        assert DEFAULT_SERVICE_NAME == "calendar_sync"


class TestGetLogger:
    def test_get_logger_returns_named_logger(self) -> None:
        logger = get_logger("app.services.sync_processor")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "app.services.sync_processor"
        assert get_logger("app.services.sync_processor") is logger


class TestSyncContextFilter:
    """Testes para SyncContextFilter."""

    def test_filter_adds_context_from_getters(self) -> None:
        filter_ = SyncContextFilter(
            "calendar_sync",
            correlation_id_getter=lambda: "corr-123",
            connection_id_getter=lambda: "conn-9",
        )
        record = _record()

        assert filter_.filter(record) is True
        assert record.correlation_id == "corr-123"
        assert record.connection_id == "conn-9"
        assert record.service == "calendar_sync"

    def test_filter_preserves_explicit_values(self) -> None:
        """Valores passados via extra têm precedência."""
        filter_ = SyncContextFilter(
            "svc",
            correlation_id_getter=lambda: "from-getter",
            connection_id_getter=lambda: "conn-getter",
        )
        record = _record()
        record.correlation_id = "explicit-id"
        record.connection_id = "conn-explicit"

        filter_.filter(record)

        assert record.correlation_id == "explicit-id"
        assert record.connection_id == "conn-explicit"

    def test_filter_uses_empty_string_without_getters(self) -> None:
        filter_ = SyncContextFilter("service_name")
        record = _record()

        filter_.filter(record)

        assert record.correlation_id == ""
        assert record.connection_id == ""
        assert record.service == "service_name"


class TestCreateJsonFormatter:
    def test_required_log_fields_content(self) -> None:
        assert set(REQUIRED_LOG_FIELDS) == {
            "asctime",
            "levelname",
            "name",
            "message",
            "correlation_id",
            "connection_id",
            "service",
        }

    def test_field_rename_map_content(self) -> None:
        assert FIELD_RENAME_MAP == {"levelname": "level", "name": "logger"}

    def test_formats_record_as_json_with_renamed_fields(self) -> None:
        formatter = create_json_formatter()
        record = _record("event_pushed")
        SyncContextFilter("calendar_sync", lambda: "abc-123", lambda: "conn-1").filter(record)
        record.component = "sync_processor"

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "event_pushed"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "test"
        assert payload["correlation_id"] == "abc-123"
        assert payload["connection_id"] == "conn-1"
        assert payload["service"] == "calendar_sync"
        assert payload["component"] == "sync_processor"


class TestLoggingIntegration:
    def test_full_logging_flow(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(
            level="INFO",
            service_name="integration_test",
            correlation_id_getter=lambda: "int-test-001",
        )

        get_logger("integration.test").info("sync_done", extra={"duration_ms": 42})

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["message"] == "sync_done"
        assert payload["correlation_id"] == "int-test-001"
        assert payload["duration_ms"] == 42
