"""Formatter JSON (python-json-logger) com campos obrigatórios."""

from __future__ import annotations

from pythonjsonlogger.json import JsonFormatter

REQUIRED_LOG_FIELDS = (
    "asctime",
    "levelname",
    "name",
    "message",
    "correlation_id",
    "connection_id",
    "service",
)

FIELD_RENAME_MAP = {
    "levelname": "level",
    "name": "logger",
}


def create_json_formatter() -> JsonFormatter:
    """Cria formatter JSON com campos padronizados.

    Exemplo de output:
        {
            "asctime": "2026-03-02 10:30:00,120",
            "level": "INFO",
            "logger": "app.services.sync_processor",
            "message": "event_recreated",
            "correlation_id": "abc-123",
            "connection_id": "conn-1",
            "service": "calendar_sync"
        }
    """
    format_string = " ".join(f"%({field})s" for field in REQUIRED_LOG_FIELDS)
    return JsonFormatter(format_string, rename_fields=FIELD_RENAME_MAP)
