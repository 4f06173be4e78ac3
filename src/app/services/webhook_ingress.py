"""Entrada das notificações push do Google Calendar.

A notificação não traz o conteúdo da mudança, só "algo mudou no canal X".
Aqui validamos o canal e despachamos o processamento para o pool de
workers; o HTTP responde 200 sem esperar a sincronização.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from app.domain.calendar_event import WebhookNotification
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.dedupe import AsyncDedupeProtocol
    from app.services.sync_logger import SyncLogger
    from app.services.sync_processor import SyncProcessor
    from app.services.worker_pool import SyncWorkerPool

logger = logging.getLogger(__name__)

_COMPONENT = "webhook_ingress"

IngressStatus = Literal["ignored", "handshake", "duplicate", "accepted", "rejected", "deactivated"]


@dataclass(frozen=True)
class IngressResult:
    status: IngressStatus
    connection_id: str | None = None
    reason: str | None = None


class WebhookIngress:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        processor: SyncProcessor,
        pool: SyncWorkerPool,
        sync_logger: SyncLogger,
        dedupe: AsyncDedupeProtocol | None = None,
        dedupe_ttl_seconds: int = 86400,
        channel_token: str | None = None,
    ) -> None:
        self._connections = connection_store
        self._processor = processor
        self._pool = pool
        self._sync_logger = sync_logger
        self._dedupe = dedupe
        self._dedupe_ttl = dedupe_ttl_seconds
        self._channel_token = channel_token

    async def handle(self, notification: WebhookNotification) -> IngressResult:
        connection = await self._connections.find_by_channel(notification.channel_id)
        if connection is None or not connection.is_active:
            # Canal antigo ou de outra instalação: 200 sem efeito.
            return self._ignored(notification, "unknown_channel")
        if (
            notification.resource_id
            and connection.webhook_resource_id
            and notification.resource_id != connection.webhook_resource_id
        ):
            return self._ignored(notification, "resource_mismatch")
        if self._channel_token and not hmac.compare_digest(
            notification.channel_token or "", self._channel_token
        ):
            return self._ignored(notification, "token_mismatch")

        if notification.resource_state == "sync":
            logger.info(
                "webhook_handshake",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "channel_id": notification.channel_id,
                },
            )
            return IngressResult("handshake", connection.id)

        if notification.resource_state == "not_exists":
            await self._connections.deactivate(connection.id, "calendar_deleted")
            await self._connections.update_webhook(connection.id, None)
            await self._sync_logger.record(
                operation="deactivate",
                sync_type="webhook",
                status="failed",
                connection_id=connection.id,
                error_code="CALENDAR_DELETED",
                details={"channel_id": notification.channel_id},
            )
            return IngressResult("deactivated", connection.id, "calendar_deleted")

        if await self._is_duplicate(notification):
            return IngressResult("duplicate", connection.id)

        connection_id = connection.id
        accepted = self._pool.submit(
            f"connection:{connection_id}",
            lambda: self._processor.process_notification(connection_id),
        )
        if not accepted:
            return IngressResult("rejected", connection_id, "queue_full")
        logger.info(
            "webhook_accepted",
            extra={
                "component": _COMPONENT,
                "connection_id": connection_id,
                "message_number": notification.message_number,
            },
        )
        return IngressResult("accepted", connection_id)

    async def _is_duplicate(self, notification: WebhookNotification) -> bool:
        if self._dedupe is None or notification.message_number is None:
            return False
        key = f"calendar_webhook:{notification.channel_id}:{notification.message_number}"
        try:
            return await self._dedupe.seen(key, self._dedupe_ttl)
        except RedisConnectionError as exc:
            # O processamento é idempotente; segue sem dedupe.
            logger.warning(
                "webhook_dedupe_unavailable",
                extra={"component": _COMPONENT, "error_type": type(exc).__name__},
            )
            return False

    @staticmethod
    def _ignored(notification: WebhookNotification, reason: str) -> IngressResult:
        logger.info(
            "webhook_ignored",
            extra={
                "component": _COMPONENT,
                "channel_id": notification.channel_id,
                "reason": reason,
            },
        )
        return IngressResult("ignored", reason=reason)
