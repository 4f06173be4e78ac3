"""Stores em memória — apenas para desenvolvimento e testes.

ATENÇÃO: Não usar em staging/production. Sem persistência entre reinícios
e sem coordenação entre processos.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from app.domain.calendar_connection import utc_now
from app.protocols.connection_store import ConnectionStoreProtocol
from app.protocols.dedupe import AsyncDedupeProtocol
from app.protocols.event_mapping_store import EventMappingStoreProtocol
from app.protocols.quota_counter import QuotaCounterProtocol
from app.protocols.retry_queue_store import RetryQueueStoreProtocol
from app.protocols.sync_log_store import SyncLogStoreProtocol
from utils.errors import MappingInconsistentError

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.appointment import Appointment
    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import WebhookChannel
    from app.domain.sync_records import (
        EventMapping,
        RetryQueueItem,
        RetryState,
        SyncDirection,
        SyncLogEntry,
        SyncStatus,
    )


class MemoryConnectionStore(ConnectionStoreProtocol):
    """Store de conexões em memória — apenas para dev/test."""

    def __init__(self) -> None:
        self._connections: dict[str, CalendarConnection] = {}

    def _update(self, connection_id: str, **changes: object) -> CalendarConnection | None:
        current = self._connections.get(connection_id)
        if current is None:
            return None
        updated = current.model_copy(update={**changes, "updated_at": utc_now()})
        self._connections[connection_id] = updated
        return updated.model_copy(deep=True)

    async def get(self, connection_id: str) -> CalendarConnection | None:
        connection = self._connections.get(connection_id)
        return connection.model_copy(deep=True) if connection else None

    async def get_active_for_owner(self, owner_id: str) -> CalendarConnection | None:
        for connection in self._connections.values():
            if connection.owner_id == owner_id and connection.is_active:
                return connection.model_copy(deep=True)
        return None

    async def find_by_channel(self, channel_id: str) -> CalendarConnection | None:
        for connection in self._connections.values():
            if connection.webhook_channel_id == channel_id:
                return connection.model_copy(deep=True)
        return None

    async def list_active(self) -> list[CalendarConnection]:
        return [c.model_copy(deep=True) for c in self._connections.values() if c.is_active]

    async def list_expiring_webhooks(self, before: datetime) -> list[CalendarConnection]:
        expiring = [
            c
            for c in self._connections.values()
            if c.is_active and c.webhook_expiration is not None and c.webhook_expiration <= before
        ]
        expiring.sort(key=lambda c: c.webhook_expiration)  # type: ignore[arg-type, return-value]
        return [c.model_copy(deep=True) for c in expiring]

    async def save(self, connection: CalendarConnection) -> None:
        if connection.is_active:
            for other_id, other in list(self._connections.items()):
                if other_id != connection.id and other.owner_id == connection.owner_id and other.is_active:
                    self._update(other_id, is_active=False, deactivated_reason="superseded")
        self._connections[connection.id] = connection.model_copy(deep=True)

    async def compare_and_set_tokens(
        self,
        connection_id: str,
        *,
        expected_version: int,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        token_expiry: datetime,
    ) -> bool:
        current = self._connections.get(connection_id)
        if current is None or current.token_version != expected_version:
            return False
        self._update(
            connection_id,
            access_token_encrypted=access_token_encrypted,
            refresh_token_encrypted=refresh_token_encrypted,
            token_expiry=token_expiry,
            token_version=expected_version + 1,
        )
        return True

    async def update_webhook(self, connection_id: str, channel: WebhookChannel | None) -> None:
        self._update(
            connection_id,
            webhook_channel_id=channel.channel_id if channel else None,
            webhook_resource_id=channel.resource_id if channel else None,
            webhook_expiration=channel.expiration if channel else None,
        )

    async def mark_webhook_stopped(self, connection_id: str) -> None:
        self._update(connection_id, webhook_channel_id=None, webhook_resource_id=None)

    async def update_sync_state(
        self,
        connection_id: str,
        *,
        last_sync_at: datetime,
        sync_token: str | None,
    ) -> None:
        self._update(connection_id, last_sync_at=last_sync_at, sync_token=sync_token)

    async def record_sync_result(
        self,
        connection_id: str,
        *,
        success: bool,
        pause_threshold: int,
    ) -> CalendarConnection | None:
        current = self._connections.get(connection_id)
        if current is None:
            return None
        if success:
            return self._update(connection_id, consecutive_failures=0)
        failures = current.consecutive_failures + 1
        return self._update(
            connection_id,
            consecutive_failures=failures,
            auto_sync_paused=current.auto_sync_paused or failures >= pause_threshold,
        )

    async def resume(self, connection_id: str) -> None:
        self._update(connection_id, auto_sync_paused=False, consecutive_failures=0)

    async def deactivate(self, connection_id: str, reason: str) -> None:
        self._update(connection_id, is_active=False, deactivated_reason=reason)


class MemoryEventMappingStore(EventMappingStoreProtocol):
    """Store de mapeamentos em memória — apenas para dev/test."""

    def __init__(self) -> None:
        self._mappings: dict[str, EventMapping] = {}

    async def find(self, appointment_id: str) -> EventMapping | None:
        for mapping in self._mappings.values():
            if mapping.appointment_id == appointment_id:
                return mapping.model_copy()
        return None

    async def find_by_external_id(
        self,
        connection_id: str,
        external_event_id: str,
    ) -> EventMapping | None:
        for mapping in self._mappings.values():
            if (
                mapping.connection_id == connection_id
                and mapping.external_event_id == external_event_id
            ):
                return mapping.model_copy()
        return None

    async def create(self, mapping: EventMapping) -> EventMapping:
        existing = await self.find(mapping.appointment_id)
        if existing is not None:
            return existing
        taken = await self.find_by_external_id(mapping.connection_id, mapping.external_event_id)
        if taken is not None:
            raise MappingInconsistentError(
                "Evento externo já vinculado a outro agendamento",
                details={
                    "external_event_id": mapping.external_event_id,
                    "existing_appointment_id": taken.appointment_id,
                    "requested_appointment_id": mapping.appointment_id,
                },
            )
        self._mappings[mapping.id] = mapping.model_copy()
        return mapping.model_copy()

    async def update_last_synced(
        self,
        mapping_id: str,
        instant: datetime,
        direction: SyncDirection = "push",
    ) -> None:
        mapping = self._mappings.get(mapping_id)
        if mapping is not None:
            self._mappings[mapping_id] = mapping.model_copy(
                update={"last_synced_at": instant, "sync_direction": direction}
            )

    async def delete(self, mapping_id: str) -> None:
        self._mappings.pop(mapping_id, None)

    async def count_for_connection(self, connection_id: str) -> int:
        return sum(1 for m in self._mappings.values() if m.connection_id == connection_id)


class MemorySyncLogStore(SyncLogStoreProtocol):
    """Log de auditoria em memória — apenas para dev/test."""

    def __init__(self, max_records: int = 10000) -> None:
        self._entries: list[SyncLogEntry] = []
        self._max_records = max_records

    async def append(self, entry: SyncLogEntry) -> None:
        self._entries.append(entry)
        # Limita tamanho para evitar memory leak em dev
        if len(self._entries) > self._max_records:
            self._entries = self._entries[-self._max_records :]

    async def list_recent(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[SyncLogEntry]:
        entries = [
            e for e in self._entries if connection_id is None or e.connection_id == connection_id
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    async def count(
        self,
        connection_id: str,
        *,
        since: datetime | None = None,
        status: SyncStatus | None = None,
    ) -> int:
        return sum(
            1
            for e in self._entries
            if e.connection_id == connection_id
            and (since is None or e.created_at >= since)
            and (status is None or e.status == status)
        )

    def get_entries(self) -> list[SyncLogEntry]:
        """Retorna todos os registros em ordem de inclusão (apenas para testes)."""
        return list(self._entries)


class MemoryRetryQueueStore(RetryQueueStoreProtocol):
    """Fila de retry em memória — apenas para dev/test."""

    def __init__(self) -> None:
        self._items: dict[str, RetryQueueItem] = {}

    async def add(self, item: RetryQueueItem) -> None:
        self._items[item.id] = item.model_copy(deep=True)

    async def get(self, item_id: str) -> RetryQueueItem | None:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def find_pending(
        self,
        connection_id: str,
        appointment_id: str | None,
    ) -> RetryQueueItem | None:
        for item in self._items.values():
            if (
                item.state == "pending"
                and item.connection_id == connection_id
                and item.appointment_id == appointment_id
            ):
                return item.model_copy(deep=True)
        return None

    async def list_due(self, now: datetime, *, limit: int) -> list[RetryQueueItem]:
        due = [i for i in self._items.values() if i.state == "pending" and i.next_retry_at <= now]
        due.sort(key=lambda i: i.next_retry_at)
        return [i.model_copy(deep=True) for i in due[:limit]]

    async def save(self, item: RetryQueueItem) -> None:
        self._items[item.id] = item.model_copy(deep=True)

    async def delete(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    async def count(self, connection_id: str | None = None, *, state: RetryState) -> int:
        return sum(
            1
            for i in self._items.values()
            if i.state == state and (connection_id is None or i.connection_id == connection_id)
        )

    async def next_due_at(self, connection_id: str | None = None) -> datetime | None:
        pending = [
            i.next_retry_at
            for i in self._items.values()
            if i.state == "pending" and (connection_id is None or i.connection_id == connection_id)
        ]
        return min(pending) if pending else None

    async def list_failed(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[RetryQueueItem]:
        failed = [
            i
            for i in self._items.values()
            if i.state == "failed_permanently"
            and (connection_id is None or i.connection_id == connection_id)
        ]
        failed.sort(key=lambda i: i.updated_at, reverse=True)
        return [i.model_copy(deep=True) for i in failed[:limit]]


class MemoryAppointmentStore:
    """Agendamentos em memória — substitui o store externo em dev/test."""

    def __init__(self, appointments: list[Appointment] | None = None) -> None:
        self._appointments: dict[str, Appointment] = {a.id: a for a in appointments or []}

    def put(self, appointment: Appointment) -> None:
        self._appointments[appointment.id] = appointment

    def remove(self, appointment_id: str) -> None:
        self._appointments.pop(appointment_id, None)

    async def get(self, appointment_id: str) -> Appointment | None:
        return self._appointments.get(appointment_id)

    async def create(self, appointment: Appointment) -> Appointment:
        self._appointments[appointment.id] = appointment
        return appointment

    async def delete(self, appointment_id: str) -> None:
        self._appointments.pop(appointment_id, None)

    async def list_for_owner(
        self,
        owner_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[Appointment]:
        selected = [
            a
            for a in self._appointments.values()
            if a.owner_id == owner_id
            and (start is None or a.start_at >= start)
            and (end is None or a.start_at < end)
        ]
        selected.sort(key=lambda a: a.start_at)
        return selected[:limit]


class MemoryQuotaCounter(QuotaCounterProtocol):
    """Contador de quota em memória — apenas para dev/test."""

    def __init__(self) -> None:
        self._counters: dict[str, tuple[int, float]] = {}  # scope -> (count, window_end)

    async def increment(self, scope: str, *, window_seconds: int = 86400) -> int:
        now = time.time()
        count, window_end = self._counters.get(scope, (0, 0.0))
        if now >= window_end:
            count, window_end = 0, now + window_seconds
        count += 1
        self._counters[scope] = (count, window_end)
        return count

    async def current(self, scope: str) -> int:
        count, window_end = self._counters.get(scope, (0, 0.0))
        return count if time.time() < window_end else 0


class MemoryDedupeStore(AsyncDedupeProtocol):
    """Store de dedupe em memória — apenas para dev/test."""

    def __init__(self) -> None:
        self._store: dict[str, float] = {}  # key -> expires_at

    def _cleanup_expired(self) -> None:
        now = time.time()
        expired = [k for k, v in self._store.items() if v < now]
        for k in expired:
            del self._store[k]

    async def seen(self, key: str, ttl: int) -> bool:
        self._cleanup_expired()
        now = time.time()
        if key in self._store and self._store[key] > now:
            return True
        self._store[key] = now + ttl
        return False
