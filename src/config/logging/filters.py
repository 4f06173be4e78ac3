"""Filtro que injeta contexto de sincronização em cada registro de log.

Campos injetados:
- correlation_id: rastreamento da requisição/job
- connection_id: conexão de agenda em processamento (vazio fora de um job)
- service: nome do serviço
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class SyncContextFilter(logging.Filter):
    """Enriquece registros com correlation_id, connection_id e service.

    Valores passados explicitamente via `extra` têm precedência sobre o
    contexto.
    """

    def __init__(
        self,
        service_name: str,
        correlation_id_getter: Callable[[], str] | None = None,
        connection_id_getter: Callable[[], str] | None = None,
    ) -> None:
        super().__init__()
        self._service_name = service_name
        self._get_correlation_id = correlation_id_getter or (lambda: "")
        self._get_connection_id = connection_id_getter or (lambda: "")

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = self._get_correlation_id()
        if not getattr(record, "connection_id", None):
            record.connection_id = self._get_connection_id()
        record.service = self._service_name
        return True
