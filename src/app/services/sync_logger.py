"""Gravação do log de auditoria de sincronização.

Cada mutação local ou externa vira uma SyncLogEntry; o mesmo evento sai
também no logging estruturado (sem PII) e como métrica.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from app.domain.sync_records import SyncLogEntry
from app.observability import record_sync_outcome

if TYPE_CHECKING:
    from app.domain.sync_records import SyncOperation, SyncStatus, SyncType
    from app.protocols.sync_log_store import SyncLogStoreProtocol

logger = logging.getLogger(__name__)


class SyncLogger:
    def __init__(self, store: SyncLogStoreProtocol) -> None:
        self._store = store

    async def record(
        self,
        *,
        operation: SyncOperation,
        sync_type: SyncType,
        status: SyncStatus,
        connection_id: str | None = None,
        appointment_id: str | None = None,
        external_event_id: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        details: dict[str, Any] | None = None,
        duration_ms: float = 0,
    ) -> SyncLogEntry:
        entry = SyncLogEntry(
            connection_id=connection_id,
            appointment_id=appointment_id,
            external_event_id=external_event_id,
            operation=operation,
            sync_type=sync_type,
            status=status,
            error_code=error_code,
            error_message=error_message,
            details=details or {},
            duration_ms=max(0, round(duration_ms)),
        )
        await self._store.append(entry)

        log = logger.warning if status == "failed" else logger.info
        log(
            "sync_log_recorded",
            extra={
                "component": "sync_logger",
                "operation": operation,
                "sync_type": sync_type,
                "result": status,
                "connection_id": connection_id,
                "appointment_id": appointment_id,
                "error_code": error_code,
                "duration_ms": entry.duration_ms,
            },
        )
        record_sync_outcome(operation, status, sync_type)
        return entry
