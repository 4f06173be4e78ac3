"""Registro e cancelamento de canais de notificação (push) do Google Calendar."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from app.domain.calendar_connection import utc_now
from app.services.calendar_api_client import is_rate_limited
from utils.errors import (
    CalendarDeletedError,
    CredentialRevokedError,
    InfrastructureError,
    ProviderHttpError,
)

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import WebhookChannel
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.services.calendar_api_client import RateLimitedCalendarClient

logger = logging.getLogger(__name__)

_COMPONENT = "webhook_registration"

DEFAULT_CHANNEL_TTL_SECONDS = 7 * 24 * 3600


class WebhookRegistrar:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        api: RateLimitedCalendarClient,
        callback_url: str,
        channel_token: str | None = None,
        ttl_seconds: int = DEFAULT_CHANNEL_TTL_SECONDS,
    ) -> None:
        self._connections = connection_store
        self._api = api
        self._callback_url = callback_url
        self._channel_token = channel_token
        self._ttl_seconds = ttl_seconds

    async def register(self, connection: CalendarConnection) -> WebhookChannel:
        """Abre um canal novo e persiste (channel_id, resource_id, expiração).

        Erros fatais desativam a conexão antes de propagar; erros
        transitórios propagam sem alterar o estado.
        """
        channel_id = str(uuid.uuid4())
        try:
            channel = await self._api.watch_events(
                connection,
                channel_id=channel_id,
                callback_url=self._callback_url,
                ttl_seconds=self._ttl_seconds,
                channel_token=self._channel_token,
            )
        except ProviderHttpError as exc:
            fatal = _fatal_for(connection.id, exc)
            if fatal is None:
                raise
            await self._connections.deactivate(connection.id, fatal.error_code.lower())
            logger.warning(
                "webhook_register_fatal",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "error_code": fatal.error_code,
                    "status_code": exc.status_code,
                },
            )
            raise fatal from exc

        await self._connections.update_webhook(connection.id, channel)
        logger.info(
            "webhook_registered",
            extra={
                "component": _COMPONENT,
                "connection_id": connection.id,
                "channel_id": channel.channel_id,
                "expiration": channel.expiration.isoformat(),
            },
        )
        return channel

    async def stop(self, connection: CalendarConnection) -> None:
        """Cancela o canal atual; canal já inexistente no Google não é erro."""
        await self._stop_remote(connection, strict=True)
        await self._connections.update_webhook(connection.id, None)

    async def renew(self, connection: CalendarConnection) -> WebhookChannel:
        """Para o canal atual e registra um novo, nessa ordem.

        Falha ao parar o canal antigo só é registrada: ele expira sozinho e o
        registro gravado continua válido. Se o registro do novo canal falhar
        depois que o antigo foi parado, os ids do canal são limpos (o health
        mostra `webhook_missing`) mas a expiração é mantida, para que a
        próxima renovação pegue a conexão de novo.
        """
        stopped = await self._stop_remote(connection, strict=False)
        try:
            return await self.register(connection)
        except (InfrastructureError, ProviderHttpError, TimeoutError, ConnectionError):
            if stopped:
                await self._connections.mark_webhook_stopped(connection.id)
                logger.warning(
                    "webhook_stopped_not_reregistered",
                    extra={
                        "component": _COMPONENT,
                        "connection_id": connection.id,
                        "old_channel_id": connection.webhook_channel_id,
                    },
                )
            raise

    async def _stop_remote(self, connection: CalendarConnection, *, strict: bool) -> bool:
        """Para o canal gravado; True se ele não está mais ativo no Google."""
        if not (connection.webhook_channel_id and connection.webhook_resource_id):
            return False
        try:
            await self._api.stop_channel(
                connection, connection.webhook_channel_id, connection.webhook_resource_id
            )
        except (InfrastructureError, ProviderHttpError, TimeoutError, ConnectionError) as exc:
            already_gone = isinstance(exc, ProviderHttpError) and exc.status_code in {404, 410}
            if not already_gone:
                if strict:
                    raise
                logger.warning(
                    "webhook_stop_failed",
                    extra={
                        "component": _COMPONENT,
                        "connection_id": connection.id,
                        "channel_id": connection.webhook_channel_id,
                        "error_type": type(exc).__name__,
                    },
                )
                return False
            logger.info(
                "webhook_already_stopped",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "channel_id": connection.webhook_channel_id,
                },
            )
        return True

    async def ensure(
        self,
        connection: CalendarConnection,
        *,
        threshold: timedelta = timedelta(hours=24),
        now: datetime | None = None,
    ) -> WebhookChannel | None:
        """Registra só se não houver canal ativo fora da janela de expiração."""
        if not connection.is_active:
            return None
        if connection.has_webhook and not connection.webhook_expires_within(
            now or utc_now(), threshold
        ):
            return None
        if connection.has_webhook:
            return await self.renew(connection)
        return await self.register(connection)


def _fatal_for(
    connection_id: str, exc: ProviderHttpError
) -> CalendarDeletedError | CredentialRevokedError | None:
    if exc.status_code == 404:
        return CalendarDeletedError(connection_id, "Agenda não encontrada ao registrar webhook")
    if exc.status_code == 401 or (exc.status_code == 403 and not is_rate_limited(exc)):
        return CredentialRevokedError(connection_id, "Acesso negado ao registrar webhook")
    return None
