"""Configuração centralizada de logging.

Um único handler JSON no root logger, com o filtro de contexto que injeta
correlation_id e connection_id vindos das ContextVars de app/observability.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from config.logging.filters import SyncContextFilter
from config.logging.formatters import create_json_formatter

if TYPE_CHECKING:
    from collections.abc import Callable

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_SERVICE_NAME = "calendar_sync"

# Bibliotecas ruidosas em INFO (descoberta da API Google, APScheduler)
_QUIET_LOGGERS = ("googleapiclient.discovery_cache", "apscheduler.executors.default")


def configure_logging(
    level: str = "INFO",
    service_name: str = DEFAULT_SERVICE_NAME,
    correlation_id_getter: Callable[[], str] | None = None,
    connection_id_getter: Callable[[], str] | None = None,
) -> None:
    """Configura logging JSON estruturado para o serviço.

    Args:
        level: Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        service_name: Nome do serviço nos registros.
        correlation_id_getter: Retorna o correlation_id do contexto atual.
        connection_id_getter: Retorna a conexão de agenda em processamento.

    Raises:
        ValueError: Se o nível de log for inválido.
    """
    level_upper = level.upper()
    if level_upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Nível de log inválido: {level}. "
            f"Válidos: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )

    handler = logging.StreamHandler()
    handler.setLevel(level_upper)
    handler.setFormatter(create_json_formatter())
    handler.addFilter(
        SyncContextFilter(
            service_name,
            correlation_id_getter=correlation_id_getter,
            connection_id_getter=connection_id_getter,
        )
    )

    root = logging.getLogger()
    root.setLevel(level_upper)
    root.handlers = [handler]

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Retorna logger do módulo (o filtro do handler injeta o contexto)."""
    return logging.getLogger(name)
