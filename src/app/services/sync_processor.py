"""Processador de sincronização: máquina de estados de resolução de conflitos.

Política: o agendamento local é sempre a fonte da verdade (local-wins).

Casos, por agendamento (com o lock do agendamento seguro durante toda a
resolução, chamadas de rede incluídas):

- agendamento removido/cancelado e mapeamento existe -> apaga evento e mapeamento
- agendamento ativo sem mapeamento -> cria evento e mapeamento
- evento externo ausente/cancelado -> recria evento, novo mapeamento (`recreated`)
- ambos os lados mudaram desde last_synced_at -> conflito, sobrescreve o externo
- só o lado externo mudou -> `skipped` (não importamos edições externas)
- só o lado local mudou -> atualiza o evento externo

Antes de qualquer escrita o agendamento é relido, para não sobrescrever o
calendário com um estado que mudou durante a chamada anterior.

Falhas transitórias viram RetryQueueItem; falhas fatais desativam a conexão;
MappingInconsistent é registrado com detalhes e a operação é pulada.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Literal

from app.domain.calendar_connection import utc_now
from app.domain.sync_records import EventMapping
from app.observability import record_latency, reset_connection_id, set_connection_id
from app.services.error_classifier import classify_error
from app.services.event_mapper import (
    build_event_body,
    event_matches,
    snapshot_appointment,
    snapshot_event,
)
from app.services.retry_queue import RetryResult
from utils.errors import (
    CalendarDeletedError,
    ConnectionFatalError,
    CredentialRevokedError,
    InfrastructureError,
    MappingInconsistentError,
    ProviderHttpError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from typing import Any

    from app.domain.appointment import Appointment
    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import EventPage, ExternalEvent
    from app.domain.sync_records import (
        RetryOperation,
        RetryQueueItem,
        SyncOperation,
        SyncType,
    )
    from app.protocols.appointment_store import AppointmentStoreProtocol
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.event_mapping_store import EventMappingStoreProtocol
    from app.services.calendar_api_client import RateLimitedCalendarClient
    from app.services.keyed_lock import KeyedLock
    from app.services.retry_queue import RetryQueue
    from app.services.sync_criteria import SyncCriteria
    from app.services.sync_logger import SyncLogger

logger = logging.getLogger(__name__)

_COMPONENT = "sync_processor"

# Falhas convertidas em RetryQueueItem na fronteira do processador.
_RETRYABLE_FAILURES = (InfrastructureError, ProviderHttpError, TimeoutError, ConnectionError)

EXTERNAL_ONLY_REASON = "Alterações no calendário ignoradas (agendamento é a fonte da verdade)"

SyncAction = Literal["create", "update", "delete", "recreated", "skipped", "unchanged", "failed"]
NotificationStatus = Literal["success", "partial", "failed", "skipped"]


@dataclass(frozen=True)
class SyncOutcome:
    appointment_id: str | None
    action: SyncAction
    external_event_id: str | None = None
    conflict: bool = False
    reason: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False
    enqueued: bool = False

    @property
    def failed(self) -> bool:
        return self.action == "failed"


@dataclass
class NotificationResult:
    connection_id: str
    status: NotificationStatus
    events_seen: int = 0
    outcomes: list[SyncOutcome] = field(default_factory=list)
    reason: str | None = None


@dataclass
class _Attempt:
    """Operação em curso, para registrar a falha com o nome certo."""

    operation: SyncOperation = "update"


class SyncProcessor:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        mapping_store: EventMappingStoreProtocol,
        appointment_store: AppointmentStoreProtocol,
        api: RateLimitedCalendarClient,
        sync_logger: SyncLogger,
        retry_queue: RetryQueue,
        locks: KeyedLock,
        criteria: SyncCriteria,
        timezone: str = "America/Sao_Paulo",
        lock_timeout_seconds: float = 60.0,
        initial_window: timedelta = timedelta(days=7),
        pause_threshold: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections = connection_store
        self._mappings = mapping_store
        self._appointments = appointment_store
        self._api = api
        self._sync_logger = sync_logger
        self._retry_queue = retry_queue
        self._locks = locks
        self._criteria = criteria
        self._timezone = timezone
        self._lock_timeout = lock_timeout_seconds
        self._initial_window = initial_window
        self._pause_threshold = pause_threshold
        self._clock = clock

    # ──────────────────────────────────────────────────────────────
    # Caminho do webhook: alterações na agenda externa
    # ──────────────────────────────────────────────────────────────

    async def process_notification(
        self,
        connection_id: str,
        *,
        enqueue_on_failure: bool = True,
    ) -> NotificationResult:
        """Busca as alterações da agenda e reconcilia cada evento mapeado."""
        connection = await self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            return NotificationResult(connection_id, "skipped", reason="connection_inactive")
        if connection.auto_sync_paused:
            return NotificationResult(connection_id, "skipped", reason="auto_sync_paused")

        context_token = set_connection_id(connection_id)
        started = time.perf_counter()
        try:
            try:
                page = await self._fetch_changes(connection)
            except ConnectionFatalError as exc:
                await self._handle_fatal(connection, exc, None, "webhook", started)
                return NotificationResult(connection_id, "failed", reason=exc.error_code)
            except _RETRYABLE_FAILURES as exc:
                outcome = await self._handle_failure(
                    connection,
                    None,
                    exc,
                    sync_type="webhook",
                    operation="import",
                    started=started,
                    enqueue=enqueue_on_failure,
                )
                await self._connections.record_sync_result(
                    connection_id, success=False, pause_threshold=self._pause_threshold
                )
                return NotificationResult(
                    connection_id, "failed", outcomes=[outcome], reason=outcome.error_code
                )

            result = NotificationResult(connection_id, "success", events_seen=len(page.events))
            for event in page.events:
                result.outcomes.append(
                    await self._reconcile_external_event(connection, event, enqueue_on_failure)
                )

            await self._connections.update_sync_state(
                connection_id,
                last_sync_at=self._clock(),
                sync_token=page.next_sync_token or connection.sync_token,
            )

            failures = sum(1 for o in result.outcomes if o.failed)
            if failures:
                result.status = "failed" if failures == len(result.outcomes) else "partial"
            if page.events:
                await self._sync_logger.record(
                    operation="import",
                    sync_type="webhook",
                    status=result.status,  # type: ignore[arg-type]
                    connection_id=connection_id,
                    details={
                        "events": len(page.events),
                        "actions": _count_actions(result.outcomes),
                        "failures": failures,
                    },
                    duration_ms=_elapsed_ms(started),
                )
            return result
        finally:
            record_latency(_COMPONENT, "process_notification", _elapsed_ms(started))
            reset_connection_id(context_token)

    async def _fetch_changes(self, connection: CalendarConnection) -> EventPage:
        try:
            if connection.sync_token:
                try:
                    return await self._api.list_events_since(
                        connection, sync_token=connection.sync_token
                    )
                except ProviderHttpError as exc:
                    if exc.status_code != 410:
                        raise
                    logger.info(
                        "sync_token_expired",
                        extra={"component": _COMPONENT, "connection_id": connection.id},
                    )
            return await self._api.list_events_since(
                connection,
                sync_token=None,
                updated_min=self._clock() - self._initial_window,
            )
        except ProviderHttpError as exc:
            if exc.status_code == 404:
                raise CalendarDeletedError(connection.id, "Agenda não encontrada") from exc
            if exc.status_code == 401:
                raise CredentialRevokedError(connection.id, "Acesso à agenda negado") from exc
            raise

    async def _reconcile_external_event(
        self,
        connection: CalendarConnection,
        event: ExternalEvent,
        enqueue_on_failure: bool,
    ) -> SyncOutcome:
        mapping = await self._mappings.find_by_external_id(connection.id, event.event_id)
        if mapping is None:
            # Eventos criados direto no Google não são importados.
            return SyncOutcome(None, "unchanged", event.event_id, reason="unmapped_event")
        return await self._reconcile_locked(
            connection,
            mapping.appointment_id,
            sync_type="webhook",
            force=False,
            enqueue_on_failure=enqueue_on_failure,
            notified_event_id=event.event_id,
        )

    # ──────────────────────────────────────────────────────────────
    # Caminho por agendamento: push, bulk e retry
    # ──────────────────────────────────────────────────────────────

    async def reconcile_appointment(
        self,
        appointment_id: str,
        *,
        sync_type: SyncType = "push",
        force: bool = False,
        enqueue_on_failure: bool = True,
    ) -> SyncOutcome:
        try:
            connection = await self._connection_for_appointment(appointment_id)
        except _RETRYABLE_FAILURES as exc:
            return self._lookup_failed(appointment_id, exc)
        if connection is None:
            return SyncOutcome(appointment_id, "skipped", reason="no_active_connection")
        if connection.auto_sync_paused and not force:
            return SyncOutcome(appointment_id, "skipped", reason="auto_sync_paused")
        return await self._reconcile_locked(
            connection,
            appointment_id,
            sync_type=sync_type,
            force=force,
            enqueue_on_failure=enqueue_on_failure,
        )

    async def resync_appointment(self, appointment_id: str) -> SyncOutcome:
        """Apaga o evento externo e o recria a partir do agendamento."""
        try:
            connection = await self._connection_for_appointment(appointment_id)
        except _RETRYABLE_FAILURES as exc:
            return self._lookup_failed(appointment_id, exc)
        if connection is None:
            return SyncOutcome(appointment_id, "skipped", reason="no_active_connection")
        return await self._reconcile_locked(
            connection,
            appointment_id,
            sync_type="push",
            force=True,
            enqueue_on_failure=True,
            recreate=True,
        )

    async def retry(self, item: RetryQueueItem) -> RetryResult:
        """Executor da fila de retry (nunca re-enfileira).

        Conexão pausada adia o item sem consumir tier; conexão inexistente
        ou inativa o torna falha permanente, visível no health.
        """
        if item.appointment_id is None:
            result = await self.process_notification(item.connection_id, enqueue_on_failure=False)
            if result.reason == "auto_sync_paused":
                return RetryResult(succeeded=False, error=result.reason, deferred=True)
            failed = [o for o in result.outcomes if o.failed]
            if result.status == "failed" and failed:
                return RetryResult(
                    succeeded=False,
                    error=failed[0].error_message or "",
                    error_code=failed[0].error_code,
                    retryable=failed[0].retryable,
                )
            if result.status in {"failed", "skipped"}:
                return RetryResult(succeeded=False, error=result.reason or "", retryable=False)
            return RetryResult(succeeded=True)

        outcome = await self.reconcile_appointment(
            item.appointment_id, sync_type="push", enqueue_on_failure=False
        )
        if outcome.action == "skipped" and outcome.reason == "auto_sync_paused":
            return RetryResult(succeeded=False, error=outcome.reason, deferred=True)
        if outcome.action == "skipped" and outcome.reason == "no_active_connection":
            return RetryResult(
                succeeded=False,
                error=outcome.reason,
                error_code="NO_ACTIVE_CONNECTION",
                retryable=False,
            )
        if outcome.failed:
            return RetryResult(
                succeeded=False,
                error=outcome.error_message or "",
                error_code=outcome.error_code,
                retryable=outcome.retryable,
            )
        return RetryResult(succeeded=True)

    def _lookup_failed(self, appointment_id: str, exc: Exception) -> SyncOutcome:
        # Sem conexão resolvida não há onde registrar log nem enfileirar.
        classified = classify_error(exc)
        logger.warning(
            "connection_lookup_failed",
            extra={
                "component": _COMPONENT,
                "appointment_id": appointment_id,
                "error_code": classified.code,
                "error_type": type(exc).__name__,
            },
        )
        return SyncOutcome(
            appointment_id,
            "failed",
            error_code=classified.code,
            error_message=classified.user_message,
            retryable=classified.retryable,
        )

    async def _connection_for_appointment(self, appointment_id: str) -> CalendarConnection | None:
        mapping = await self._mappings.find(appointment_id)
        if mapping is not None:
            connection = await self._connections.get(mapping.connection_id)
            if connection is not None and connection.is_active:
                return connection
        appointment = await self._appointments.get(appointment_id)
        if appointment is None:
            return None
        return await self._connections.get_active_for_owner(appointment.owner_id)

    # ──────────────────────────────────────────────────────────────
    # Resolução sob lock
    # ──────────────────────────────────────────────────────────────

    async def _reconcile_locked(
        self,
        connection: CalendarConnection,
        appointment_id: str,
        *,
        sync_type: SyncType,
        force: bool,
        enqueue_on_failure: bool,
        notified_event_id: str | None = None,
        recreate: bool = False,
    ) -> SyncOutcome:
        started = time.perf_counter()
        attempt = _Attempt()
        try:
            async with self._locks.hold(f"appointment:{appointment_id}", self._lock_timeout):
                async with asyncio.timeout(self._lock_timeout):
                    if recreate:
                        outcome = await self._recreate_on_demand(
                            connection, appointment_id, sync_type, attempt, started
                        )
                    else:
                        outcome = await self._resolve(
                            connection,
                            appointment_id,
                            sync_type,
                            force,
                            notified_event_id,
                            attempt,
                            started,
                        )
        except ConnectionFatalError as exc:
            await self._handle_fatal(connection, exc, appointment_id, sync_type, started)
            return SyncOutcome(
                appointment_id,
                "failed",
                error_code=exc.error_code,
                error_message=classify_error(exc).user_message,
            )
        except MappingInconsistentError as exc:
            await self._sync_logger.record(
                operation=attempt.operation,
                sync_type=sync_type,
                status="failed",
                connection_id=connection.id,
                appointment_id=appointment_id,
                error_code=exc.error_code,
                error_message=str(exc),
                details=exc.details,
                duration_ms=_elapsed_ms(started),
            )
            logger.error(
                "mapping_inconsistent",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "appointment_id": appointment_id,
                    "details": exc.details,
                },
            )
            return SyncOutcome(
                appointment_id,
                "failed",
                error_code=exc.error_code,
                error_message=classify_error(exc).user_message,
            )
        except _RETRYABLE_FAILURES as exc:
            outcome = await self._handle_failure(
                connection,
                appointment_id,
                exc,
                sync_type=sync_type,
                operation=attempt.operation,
                started=started,
                enqueue=enqueue_on_failure,
            )
            await self._connections.record_sync_result(
                connection.id, success=False, pause_threshold=self._pause_threshold
            )
            return outcome

        if outcome.action in {"create", "update", "delete", "recreated"}:
            await self._connections.record_sync_result(
                connection.id, success=True, pause_threshold=self._pause_threshold
            )
        return outcome

    async def _resolve(
        self,
        connection: CalendarConnection,
        appointment_id: str,
        sync_type: SyncType,
        force: bool,
        notified_event_id: str | None,
        attempt: _Attempt,
        started: float,
    ) -> SyncOutcome:
        mapping = await self._mappings.find(appointment_id)
        if notified_event_id and mapping is None:
            # Removido por outra operação enquanto aguardávamos o lock.
            return SyncOutcome(appointment_id, "unchanged", notified_event_id, reason="mapping_removed")
        if notified_event_id and mapping.external_event_id != notified_event_id:
            raise MappingInconsistentError(
                "Mapeamento do agendamento não corresponde ao evento notificado",
                details={
                    "appointment_id": appointment_id,
                    "notified_event_id": notified_event_id,
                    "mapped_event_id": mapping.external_event_id,
                },
            )
        if mapping is not None and mapping.connection_id != connection.id:
            # Mapeamento de uma conexão anterior do operador.
            await self._mappings.delete(mapping.id)
            mapping = None

        appointment = await self._active_appointment(appointment_id)

        if appointment is None:
            if mapping is None:
                return SyncOutcome(appointment_id, "unchanged", reason="appointment_inactive")
            return await self._delete_remote(connection, mapping, sync_type, attempt, started)

        if mapping is None:
            skip_reason = self._criteria.evaluate(appointment, now=self._clock(), force=force)
            if skip_reason:
                return SyncOutcome(appointment_id, "skipped", reason=skip_reason)
            return await self._create_remote(connection, appointment, sync_type, attempt, started)

        attempt.operation = "update"
        external = await self._api.get_event(connection, mapping.external_event_id)
        if external is None or external.is_cancelled:
            return await self._recreate_remote(
                connection,
                appointment,
                mapping,
                sync_type,
                attempt,
                started,
                reason="external_missing" if external is None else "external_cancelled",
            )

        local_changed = appointment.updated_at > mapping.last_synced_at
        external_changed = external.updated is not None and external.updated > mapping.last_synced_at

        if local_changed and external_changed:
            return await self._update_remote(
                connection, appointment, mapping, external, sync_type, attempt, started, conflict=True
            )
        if external_changed and not force:
            await self._sync_logger.record(
                operation="skipped",
                sync_type=sync_type,
                status="success",
                connection_id=connection.id,
                appointment_id=appointment_id,
                external_event_id=external.event_id,
                details={
                    "reason": EXTERNAL_ONLY_REASON,
                    "calendar_updated": external.updated.isoformat() if external.updated else None,
                    "last_synced_at": mapping.last_synced_at.isoformat(),
                },
                duration_ms=_elapsed_ms(started),
            )
            return SyncOutcome(
                appointment_id, "skipped", external.event_id, reason=EXTERNAL_ONLY_REASON
            )
        if local_changed or external_changed or force or not event_matches(appointment, external):
            return await self._update_remote(
                connection, appointment, mapping, external, sync_type, attempt, started
            )
        return SyncOutcome(appointment_id, "unchanged", external.event_id)

    async def _active_appointment(self, appointment_id: str) -> Appointment | None:
        appointment = await self._appointments.get(appointment_id)
        return appointment if appointment is not None and appointment.is_active else None

    async def _create_remote(
        self,
        connection: CalendarConnection,
        appointment: Appointment,
        sync_type: SyncType,
        attempt: _Attempt,
        started: float,
    ) -> SyncOutcome:
        attempt.operation = "create"
        event = await self._api.create_event(
            connection, build_event_body(appointment, timezone=self._timezone)
        )
        candidate = EventMapping(
            appointment_id=appointment.id,
            connection_id=connection.id,
            external_event_id=event.event_id,
            last_synced_at=self._synced_at(appointment, event),
        )
        stored = await self._mappings.create(candidate)
        if stored.external_event_id != event.event_id:
            # Outra instância criou o mapeamento primeiro; desfaz o duplicado.
            await self._api.delete_event(connection, event.event_id)
            return SyncOutcome(
                appointment.id, "unchanged", stored.external_event_id, reason="created_concurrently"
            )

        await self._sync_logger.record(
            operation="create",
            sync_type=sync_type,
            status="success",
            connection_id=connection.id,
            appointment_id=appointment.id,
            external_event_id=event.event_id,
            duration_ms=_elapsed_ms(started),
        )
        return SyncOutcome(appointment.id, "create", event.event_id)

    async def _recreate_remote(
        self,
        connection: CalendarConnection,
        appointment: Appointment,
        mapping: EventMapping,
        sync_type: SyncType,
        attempt: _Attempt,
        started: float,
        *,
        reason: str,
    ) -> SyncOutcome:
        attempt.operation = "recreated"
        fresh = await self._active_appointment(appointment.id)
        if fresh is None:
            return await self._delete_remote(connection, mapping, sync_type, attempt, started)

        event = await self._api.create_event(connection, build_event_body(fresh, timezone=self._timezone))
        await self._mappings.delete(mapping.id)
        await self._mappings.create(
            EventMapping(
                appointment_id=fresh.id,
                connection_id=connection.id,
                external_event_id=event.event_id,
                last_synced_at=self._synced_at(fresh, event),
            )
        )
        await self._sync_logger.record(
            operation="recreated",
            sync_type=sync_type,
            status="success",
            connection_id=connection.id,
            appointment_id=fresh.id,
            external_event_id=event.event_id,
            details={"old_event_id": mapping.external_event_id, "reason": reason},
            duration_ms=_elapsed_ms(started),
        )
        return SyncOutcome(fresh.id, "recreated", event.event_id, reason=reason)

    async def _update_remote(
        self,
        connection: CalendarConnection,
        appointment: Appointment,
        mapping: EventMapping,
        external: ExternalEvent,
        sync_type: SyncType,
        attempt: _Attempt,
        started: float,
        *,
        conflict: bool = False,
    ) -> SyncOutcome:
        attempt.operation = "update"
        fresh = await self._active_appointment(appointment.id)
        if fresh is None:
            return await self._delete_remote(connection, mapping, sync_type, attempt, started)

        try:
            event = await self._api.update_event(
                connection,
                mapping.external_event_id,
                build_event_body(fresh, timezone=self._timezone),
            )
        except ProviderHttpError as exc:
            if exc.status_code not in {404, 410}:
                raise
            return await self._recreate_remote(
                connection, fresh, mapping, sync_type, attempt, started, reason="external_missing"
            )

        await self._mappings.update_last_synced(mapping.id, self._synced_at(fresh, event), "push")

        details: dict[str, Any] = {}
        if conflict:
            details = {
                "conflict": True,
                "conflict_reason": "both_sides_changed",
                "resolution": "local_wins",
                "last_synced_at": mapping.last_synced_at.isoformat(),
                "appointment_before": snapshot_appointment(appointment),
                "calendar_before": snapshot_event(external),
            }
            logger.info(
                "sync_conflict_resolved",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "appointment_id": fresh.id,
                    "resolution": "local_wins",
                },
            )
        await self._sync_logger.record(
            operation="update",
            sync_type=sync_type,
            status="success",
            connection_id=connection.id,
            appointment_id=fresh.id,
            external_event_id=event.event_id,
            details=details,
            duration_ms=_elapsed_ms(started),
        )
        return SyncOutcome(fresh.id, "update", event.event_id, conflict=conflict)

    async def _delete_remote(
        self,
        connection: CalendarConnection,
        mapping: EventMapping,
        sync_type: SyncType,
        attempt: _Attempt,
        started: float,
    ) -> SyncOutcome:
        attempt.operation = "delete"
        existed = await self._api.delete_event(connection, mapping.external_event_id)
        await self._mappings.delete(mapping.id)
        await self._sync_logger.record(
            operation="delete",
            sync_type=sync_type,
            status="success",
            connection_id=connection.id,
            appointment_id=mapping.appointment_id,
            external_event_id=mapping.external_event_id,
            details={"external_existed": existed, "reason": "appointment_removed"},
            duration_ms=_elapsed_ms(started),
        )
        return SyncOutcome(mapping.appointment_id, "delete", mapping.external_event_id)

    async def _recreate_on_demand(
        self,
        connection: CalendarConnection,
        appointment_id: str,
        sync_type: SyncType,
        attempt: _Attempt,
        started: float,
    ) -> SyncOutcome:
        mapping = await self._mappings.find(appointment_id)
        appointment = await self._active_appointment(appointment_id)
        if appointment is None:
            if mapping is None:
                return SyncOutcome(appointment_id, "unchanged", reason="appointment_inactive")
            return await self._delete_remote(connection, mapping, sync_type, attempt, started)
        if mapping is None:
            return await self._create_remote(connection, appointment, sync_type, attempt, started)

        attempt.operation = "delete"
        if mapping.connection_id == connection.id:
            await self._api.delete_event(connection, mapping.external_event_id)
        return await self._recreate_remote(
            connection, appointment, mapping, sync_type, attempt, started, reason="manual_resync"
        )

    def _synced_at(self, appointment: Appointment, event: ExternalEvent) -> datetime:
        # last_synced_at nunca fica atrás de nenhum dos lados recém-escritos.
        candidates = [self._clock(), appointment.updated_at]
        if event.updated is not None:
            candidates.append(event.updated)
        return max(candidates)

    # ──────────────────────────────────────────────────────────────
    # Falhas
    # ──────────────────────────────────────────────────────────────

    async def _handle_failure(
        self,
        connection: CalendarConnection,
        appointment_id: str | None,
        exc: Exception,
        *,
        sync_type: SyncType,
        operation: SyncOperation,
        started: float,
        enqueue: bool,
    ) -> SyncOutcome:
        classified = classify_error(exc)
        await self._sync_logger.record(
            operation=operation,
            sync_type=sync_type,
            status="failed",
            connection_id=connection.id,
            appointment_id=appointment_id,
            error_code=classified.code,
            error_message=classified.user_message,
            details={"category": classified.category, "status_code": classified.status_code},
            duration_ms=_elapsed_ms(started),
        )
        # Erros permanentes não voltam a ser tentados.
        enqueue = enqueue and classified.retryable
        if enqueue:
            await self._retry_queue.enqueue(
                connection_id=connection.id,
                appointment_id=appointment_id,
                operation=_retry_operation(appointment_id, operation),
                error=classified.message,
                error_code=classified.code,
            )
        return SyncOutcome(
            appointment_id,
            "failed",
            error_code=classified.code,
            error_message=classified.user_message,
            retryable=classified.retryable,
            enqueued=enqueue,
        )

    async def _handle_fatal(
        self,
        connection: CalendarConnection,
        exc: ConnectionFatalError,
        appointment_id: str | None,
        sync_type: SyncType,
        started: float,
    ) -> None:
        await self._connections.deactivate(connection.id, exc.error_code.lower())
        await self._sync_logger.record(
            operation="deactivate",
            sync_type=sync_type,
            status="failed",
            connection_id=connection.id,
            appointment_id=appointment_id,
            error_code=exc.error_code,
            error_message=classify_error(exc).user_message,
            duration_ms=_elapsed_ms(started),
        )
        logger.warning(
            "connection_deactivated",
            extra={
                "component": _COMPONENT,
                "connection_id": connection.id,
                "error_code": exc.error_code,
            },
        )


def _retry_operation(appointment_id: str | None, operation: SyncOperation) -> RetryOperation:
    if appointment_id is None:
        return "sync_changes"
    if operation in {"create", "update", "delete", "recreated"}:
        return operation  # type: ignore[return-value]
    return "update"


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _count_actions(outcomes: list[SyncOutcome]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for outcome in outcomes:
        counts[outcome.action] = counts.get(outcome.action, 0) + 1
    return counts
