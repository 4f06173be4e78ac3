"""Transporte concreto para a Google Calendar API v3 (OAuth do usuario)."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.domain.calendar_connection import utc_now
from app.domain.calendar_event import EventPage, WebhookChannel
from app.infra.calendar.google_calendar_parsers import (
    http_error_reason,
    http_status,
    map_external_event,
    parse_channel_expiration,
)
from app.observability import get_correlation_id
from app.protocols.calendar_provider import CalendarProviderProtocol
from utils.errors import ProviderHttpError

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from app.domain.calendar_event import ExternalEvent

logger = logging.getLogger(__name__)

_COMPONENT = "google_calendar_client"
_PAGE_SIZE = 250


class GoogleCalendarProvider(CalendarProviderProtocol):
    """Executa chamadas da API em thread (cliente googleapiclient e bloqueante)."""

    __slots__ = ("_timeout_seconds",)

    def __init__(self, *, timeout_seconds: float = 20.0) -> None:
        self._timeout_seconds = timeout_seconds

    async def insert_event(
        self, access_token: str, calendar_id: str, body: dict[str, Any]
    ) -> ExternalEvent:
        def call() -> dict[str, Any]:
            events = self._service(access_token).events()
            return events.insert(calendarId=calendar_id, body=body, sendUpdates="none").execute()

        return map_external_event(await self._execute("insert_event", call))

    async def update_event(
        self, access_token: str, calendar_id: str, event_id: str, body: dict[str, Any]
    ) -> ExternalEvent:
        def call() -> dict[str, Any]:
            events = self._service(access_token).events()
            return events.update(
                calendarId=calendar_id,
                eventId=event_id,
                body=body,
                sendUpdates="none",
            ).execute()

        return map_external_event(await self._execute("update_event", call))

    async def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        def call() -> None:
            self._service(access_token).events().delete(
                calendarId=calendar_id,
                eventId=event_id,
                sendUpdates="none",
            ).execute()

        await self._execute("delete_event", call)

    async def get_event(self, access_token: str, calendar_id: str, event_id: str) -> ExternalEvent:
        def call() -> dict[str, Any]:
            events = self._service(access_token).events()
            return events.get(calendarId=calendar_id, eventId=event_id).execute()

        return map_external_event(await self._execute("get_event", call))

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
        windowed = time_min is not None or time_max is not None

        def call() -> EventPage:
            events_api = self._service(access_token).events()
            params: dict[str, Any] = {
                "calendarId": calendar_id,
                "maxResults": _PAGE_SIZE,
                "showDeleted": not windowed,
                "singleEvents": True,
            }
            if windowed:
                # syncToken não combina com timeMin/timeMax na API.
                if time_min is not None:
                    params["timeMin"] = time_min.isoformat()
                if time_max is not None:
                    params["timeMax"] = time_max.isoformat()
                params["orderBy"] = "startTime"
            elif sync_token:
                params["syncToken"] = sync_token
            elif updated_min is not None:
                params["updatedMin"] = updated_min.isoformat()

            items: list[dict[str, Any]] = []
            page_token: str | None = None
            while True:
                response = events_api.list(pageToken=page_token, **params).execute()
                items.extend(response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    return EventPage(
                        events=[map_external_event(item) for item in items],
                        next_sync_token=response.get("nextSyncToken"),
                    )

        return await self._execute("list_events", call)

    async def watch_events(
        self,
        access_token: str,
        calendar_id: str,
        *,
        channel_id: str,
        address: str,
        ttl_seconds: int,
        token: str | None = None,
    ) -> WebhookChannel:
        expiration = utc_now() + timedelta(seconds=ttl_seconds)
        body: dict[str, Any] = {
            "id": channel_id,
            "type": "web_hook",
            "address": address,
            "expiration": str(int(expiration.timestamp() * 1000)),
        }
        if token:
            body["token"] = token

        def call() -> dict[str, Any]:
            events = self._service(access_token).events()
            return events.watch(calendarId=calendar_id, body=body).execute()

        response = await self._execute("watch_events", call)
        return WebhookChannel(
            channel_id=str(response.get("id") or channel_id),
            resource_id=str(response.get("resourceId") or ""),
            expiration=parse_channel_expiration(response.get("expiration")) or expiration,
        )

    async def stop_channel(self, access_token: str, channel_id: str, resource_id: str) -> None:
        def call() -> None:
            self._service(access_token).channels().stop(
                body={"id": channel_id, "resourceId": resource_id}
            ).execute()

        await self._execute("stop_channel", call)

    def _service(self, access_token: str) -> Any:
        credentials = Credentials(token=access_token)
        http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self._timeout_seconds))
        return build("calendar", "v3", http=http, cache_discovery=False)

    async def _execute(self, action: str, call: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(call)
        except HttpError as exc:
            status_code = http_status(exc) or 0
            reason = http_error_reason(exc)
            logger.info(
                "google_calendar_http_error",
                extra={
                    "component": _COMPONENT,
                    "action": action,
                    "result": "http_error",
                    "status_code": status_code,
                    "reason": reason,
                    "correlation_id": get_correlation_id(),
                },
            )
            raise ProviderHttpError(
                status_code,
                f"Google Calendar {action} falhou com HTTP {status_code}",
                reason=reason,
            ) from exc
        except httplib2.HttpLib2Error as exc:
            raise ConnectionError(f"Google Calendar {action}: {type(exc).__name__}") from exc
