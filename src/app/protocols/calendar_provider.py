"""Contrato do transporte para a API do Google Calendar.

O transporte só traduz chamadas; pacing, backoff e tokens ficam no
RateLimitedCalendarClient. Erros HTTP chegam como ProviderHttpError,
falhas de rede como TimeoutError/OSError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.calendar_event import EventPage, ExternalEvent, WebhookChannel


@runtime_checkable
class CalendarProviderProtocol(Protocol):
    """Operações cruas de eventos e canais, autenticadas por access token."""

    async def insert_event(
        self, access_token: str, calendar_id: str, body: dict[str, Any]
    ) -> ExternalEvent: ...

    async def update_event(
        self, access_token: str, calendar_id: str, event_id: str, body: dict[str, Any]
    ) -> ExternalEvent: ...

    async def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None: ...

    async def get_event(self, access_token: str, calendar_id: str, event_id: str) -> ExternalEvent:
        """Levanta ProviderHttpError(404/410) se o evento não existir."""
        ...

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        *,
        sync_token: str | None = None,
        updated_min: datetime | None = None,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
    ) -> EventPage:
        """Lista alterações; um sync_token expirado levanta ProviderHttpError(410).

        Com `time_min`/`time_max` lista os eventos ativos da janela, sem
        sync_token de retorno.
        """
        ...

    async def watch_events(
        self,
        access_token: str,
        calendar_id: str,
        *,
        channel_id: str,
        address: str,
        ttl_seconds: int,
        token: str | None = None,
    ) -> WebhookChannel: ...

    async def stop_channel(self, access_token: str, channel_id: str, resource_id: str) -> None: ...
