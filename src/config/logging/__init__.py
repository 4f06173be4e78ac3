"""Logging estruturado (JSON) do motor de sincronização de agenda.

Uso:
    from config.logging import configure_logging, get_logger

    # Na inicialização (app/bootstrap)
    configure_logging(level="INFO", service_name="calendar_sync")

    # Em qualquer módulo
    logger = get_logger(__name__)
    logger.info("event_pushed", extra={"component": "sync_processor"})

Todo registro carrega correlation_id, connection_id e service.
Tokens OAuth e dados de clientes nunca entram nos logs.
"""

from config.logging.config import configure_logging, get_logger
from config.logging.filters import SyncContextFilter
from config.logging.formatters import (
    FIELD_RENAME_MAP,
    REQUIRED_LOG_FIELDS,
    create_json_formatter,
)

__all__ = [
    "FIELD_RENAME_MAP",
    "REQUIRED_LOG_FIELDS",
    "SyncContextFilter",
    "configure_logging",
    "create_json_formatter",
    "get_logger",
]
