"""Saúde e estatísticas de sincronização por conexão (painel do operador).

O operador nunca vê códigos crus do provedor: os problemas saem como
mensagens traduzidas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Literal

from app.domain.calendar_connection import utc_now
from app.services.error_classifier import USER_MESSAGES

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.sync_log_store import SyncLogStoreProtocol
    from app.services.retry_queue import RetryQueue

HealthStatus = Literal["healthy", "warning"]

ISSUE_MESSAGES: dict[str, str] = {
    "connection_inactive": "A conexão com o Google Calendar está desativada. Reconecte sua conta.",
    "auto_sync_paused": "A sincronização automática foi pausada após falhas consecutivas.",
    "webhook_missing": "As notificações do Google Calendar não estão ativas.",
    "webhook_expiring": "As notificações do Google Calendar expiram em breve.",
    "permanent_failures": USER_MESSAGES["RETRY_LIMIT_EXCEEDED"],
    "recent_failures": "Houve falhas de sincronização nas últimas 24 horas.",
}


@dataclass
class ConnectionHealth:
    connection_id: str
    owner_id: str
    status: HealthStatus
    is_active: bool
    auto_sync_paused: bool
    last_sync_at: datetime | None
    webhook_expiration: datetime | None
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    syncs_last_24h: int
    failed_last_24h: int
    pending_retries: int
    permanent_failures: int
    next_retry_at: datetime | None
    deactivated_reason: str | None = None
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "connection_id": self.connection_id,
            "owner_id": self.owner_id,
            "status": self.status,
            "is_active": self.is_active,
            "auto_sync_paused": self.auto_sync_paused,
            "last_sync_at": _iso(self.last_sync_at),
            "webhook_expiration": _iso(self.webhook_expiration),
            "stats": {
                "total": self.total_syncs,
                "successful": self.successful_syncs,
                "failed": self.failed_syncs,
                "last_24h": self.syncs_last_24h,
                "failed_last_24h": self.failed_last_24h,
            },
            "retry_queue": {
                "pending": self.pending_retries,
                "failed_permanently": self.permanent_failures,
                "next_retry_at": _iso(self.next_retry_at),
            },
            "deactivated_reason": self.deactivated_reason,
            "issues": [ISSUE_MESSAGES[issue] for issue in self.issues],
        }


class SyncHealthService:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        sync_log_store: SyncLogStoreProtocol,
        retry_queue: RetryQueue,
        renewal_threshold: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections = connection_store
        self._logs = sync_log_store
        self._retry_queue = retry_queue
        self._renewal_threshold = renewal_threshold
        self._clock = clock

    async def connection_health(self, connection_id: str) -> ConnectionHealth | None:
        connection = await self._connections.get(connection_id)
        if connection is None:
            return None
        return await self._build(connection)

    async def all_active(self) -> list[ConnectionHealth]:
        return [await self._build(connection) for connection in await self._connections.list_active()]

    async def _build(self, connection: CalendarConnection) -> ConnectionHealth:
        now = self._clock()
        since = now - timedelta(hours=24)
        retry_stats = await self._retry_queue.stats(connection.id)

        health = ConnectionHealth(
            connection_id=connection.id,
            owner_id=connection.owner_id,
            status="healthy",
            is_active=connection.is_active,
            auto_sync_paused=connection.auto_sync_paused,
            last_sync_at=connection.last_sync_at,
            webhook_expiration=connection.webhook_expiration,
            total_syncs=await self._logs.count(connection.id),
            successful_syncs=await self._logs.count(connection.id, status="success"),
            failed_syncs=await self._logs.count(connection.id, status="failed"),
            syncs_last_24h=await self._logs.count(connection.id, since=since),
            failed_last_24h=await self._logs.count(connection.id, since=since, status="failed"),
            pending_retries=retry_stats.pending,
            permanent_failures=retry_stats.failed_permanently,
            next_retry_at=retry_stats.next_retry_at,
            deactivated_reason=connection.deactivated_reason,
        )
        health.issues = self._issues(connection, health, now)
        if health.issues:
            health.status = "warning"
        return health

    def _issues(
        self, connection: CalendarConnection, health: ConnectionHealth, now: datetime
    ) -> list[str]:
        issues: list[str] = []
        if not connection.is_active:
            issues.append("connection_inactive")
        if connection.auto_sync_paused:
            issues.append("auto_sync_paused")
        if connection.is_active and not connection.has_webhook:
            issues.append("webhook_missing")
        elif connection.has_webhook and connection.webhook_expires_within(
            now, self._renewal_threshold
        ):
            issues.append("webhook_expiring")
        if health.permanent_failures:
            issues.append("permanent_failures")
        if health.failed_last_24h:
            issues.append("recent_failures")
        return issues


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
