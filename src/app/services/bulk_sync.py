"""Sincronização em lote sob demanda (backfill e recuperação)."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from app.domain.calendar_connection import utc_now
from app.services.error_classifier import classify_error
from utils.errors import InfrastructureError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.protocols.appointment_store import AppointmentStoreProtocol
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.services.sync_processor import SyncOutcome, SyncProcessor

logger = logging.getLogger(__name__)

_COMPONENT = "bulk_sync"

DEFAULT_WINDOW = timedelta(days=30)


@dataclass
class BulkSyncResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def add(self, outcome: SyncOutcome) -> None:
        self.total += 1
        if outcome.failed:
            self.failed += 1
            self.errors.append(
                {
                    "appointment_id": outcome.appointment_id or "",
                    "error": outcome.error_message or outcome.error_code or "",
                    "error_code": outcome.error_code or "",
                }
            )
        elif outcome.action == "skipped":
            self.skipped += 1
        else:
            self.successful += 1

    def add_error(self, exc: Exception, *, appointment_id: str = "", connection_id: str = "") -> None:
        """Falha que escapou do processador; conta como item com erro."""
        classified = classify_error(exc)
        if appointment_id:
            self.total += 1
            self.failed += 1
        entry = {"error": classified.user_message, "error_code": classified.code}
        if appointment_id:
            entry["appointment_id"] = appointment_id
        if connection_id:
            entry["connection_id"] = connection_id
        self.errors.append(entry)


class BulkSyncService:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        appointment_store: AppointmentStoreProtocol,
        processor: SyncProcessor,
        batch_size: int = 10,
        batch_delay_seconds: float = 1.0,
        max_appointments: int = 500,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connections = connection_store
        self._appointments = appointment_store
        self._processor = processor
        self._batch_size = max(1, batch_size)
        self._batch_delay = batch_delay_seconds
        self._max_appointments = max_appointments
        self._clock = clock
        self._sleep = sleep

    async def run(
        self,
        *,
        connection_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        force: bool = False,
    ) -> BulkSyncResult:
        """Reconcilia os agendamentos de [start, end) de uma ou de todas as conexões ativas.

        Sem intervalo, usa de agora até 30 dias à frente.
        """
        started = time.perf_counter()
        start = start or self._clock()
        end = end or start + DEFAULT_WINDOW
        result = BulkSyncResult()

        for connection in await self._target_connections(connection_id):
            try:
                appointments = await self._appointments.list_for_owner(
                    connection.owner_id, start=start, end=end, limit=self._max_appointments
                )
            except InfrastructureError as exc:
                logger.warning(
                    "bulk_sync_list_failed",
                    extra={
                        "component": _COMPONENT,
                        "connection_id": connection.id,
                        "error_type": type(exc).__name__,
                    },
                )
                result.add_error(exc, connection_id=connection.id)
                continue
            ids = [appointment.id for appointment in appointments]
            for offset in range(0, len(ids), self._batch_size):
                if offset and self._batch_delay:
                    await self._sleep(self._batch_delay)
                batch = ids[offset : offset + self._batch_size]
                outcomes = await asyncio.gather(
                    *(
                        self._processor.reconcile_appointment(
                            appointment_id, sync_type="bulk", force=force
                        )
                        for appointment_id in batch
                    ),
                    return_exceptions=True,
                )
                for appointment_id, outcome in zip(batch, outcomes, strict=True):
                    if isinstance(outcome, Exception):
                        logger.error(
                            "bulk_sync_item_crashed",
                            extra={
                                "component": _COMPONENT,
                                "connection_id": connection.id,
                                "appointment_id": appointment_id,
                                "error_type": type(outcome).__name__,
                            },
                        )
                        result.add_error(
                            outcome, appointment_id=appointment_id, connection_id=connection.id
                        )
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        result.add(outcome)

        result.duration_ms = round((time.perf_counter() - started) * 1000)
        logger.info(
            "bulk_sync_finished",
            extra={
                "component": _COMPONENT,
                "connection_id": connection_id,
                "total": result.total,
                "successful": result.successful,
                "failed": result.failed,
                "skipped": result.skipped,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    async def _target_connections(self, connection_id: str | None) -> list[CalendarConnection]:
        if connection_id is None:
            return await self._connections.list_active()
        connection = await self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            return []
        return [connection]
