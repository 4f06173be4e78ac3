"""Testes do GoogleCalendarProvider e dos parsers de resposta."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from app.infra.calendar.google_calendar_client import GoogleCalendarProvider
from app.infra.calendar.google_calendar_parsers import (
    http_error_reason,
    map_external_event,
    parse_channel_expiration,
    parse_google_datetime,
)
from utils.errors import ProviderHttpError


def _http_error(status: int, reason: str | None = None) -> HttpError:
    body: dict[str, Any] = {"error": {"code": status, "message": "erro"}}
    if reason:
        body["error"]["errors"] = [{"reason": reason}]
    return HttpError(httplib2.Response({"status": status}), json.dumps(body).encode())


def _provider(monkeypatch: pytest.MonkeyPatch, service: MagicMock) -> GoogleCalendarProvider:
    monkeypatch.setattr(GoogleCalendarProvider, "_service", lambda self, token: service)
    return GoogleCalendarProvider()


class TestParsers:
    def test_parse_google_datetime_normalizes_to_utc(self) -> None:
        parsed = parse_google_datetime("2026-03-03T09:00:00-03:00")

        assert parsed == datetime(2026, 3, 3, 12, 0, tzinfo=UTC)
        assert parse_google_datetime("2026-03-03T12:00:00Z") == parsed
        assert parse_google_datetime("") is None
        assert parse_google_datetime("ontem") is None

    def test_parse_channel_expiration_from_millis(self) -> None:
        assert parse_channel_expiration("1772539200000") == datetime(2026, 3, 3, 12, 0, tzinfo=UTC)
        assert parse_channel_expiration(None) is None

    def test_map_external_event_reads_link_and_all_day(self) -> None:
        event = map_external_event(
            {
                "id": "evt-1",
                "status": "confirmed",
                "summary": "Consulta",
                "start": {"date": "2026-03-03"},
                "end": {"date": "2026-03-04"},
                "updated": "2026-03-02T12:00:00.000Z",
                "extendedProperties": {"private": {"appointmentId": "appt-1"}},
            }
        )

        assert event.event_id == "evt-1"
        assert event.start == datetime(2026, 3, 3, tzinfo=UTC)
        assert event.updated == datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
        assert event.appointment_id == "appt-1"

    def test_cancelled_event_without_times(self) -> None:
        event = map_external_event({"id": "evt-2", "status": "cancelled"})

        assert event.is_cancelled
        assert event.start is None
        assert event.appointment_id is None

    def test_http_error_reason(self) -> None:
        assert http_error_reason(_http_error(403, "rateLimitExceeded")) == "rateLimitExceeded"
        assert http_error_reason(_http_error(404)) is None


class TestGoogleCalendarProvider:
    @pytest.mark.asyncio
    async def test_insert_event_maps_response(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service = MagicMock()
        events = service.events.return_value
        events.insert.return_value.execute.return_value = {
            "id": "evt-1",
            "summary": "Consulta",
            "start": {"dateTime": "2026-03-03T12:00:00Z"},
            "end": {"dateTime": "2026-03-03T13:00:00Z"},
        }
        provider = _provider(monkeypatch, service)

        event = await provider.insert_event("token", "primary", {"summary": "Consulta"})

        assert event.event_id == "evt-1"
        events.insert.assert_called_once_with(
            calendarId="primary", body={"summary": "Consulta"}, sendUpdates="none"
        )

    @pytest.mark.asyncio
    async def test_list_events_follows_pages(self, monkeypatch: pytest.MonkeyPatch) -> None:
        service = MagicMock()
        events = service.events.return_value
        events.list.return_value.execute.side_effect = [
            {"items": [{"id": "evt-1"}], "nextPageToken": "page-2"},
            {"items": [{"id": "evt-2", "status": "cancelled"}], "nextSyncToken": "sync-9"},
        ]
        provider = _provider(monkeypatch, service)

        page = await provider.list_events("token", "primary", sync_token="sync-8")

        assert [e.event_id for e in page.events] == ["evt-1", "evt-2"]
        assert page.next_sync_token == "sync-9"
        first_call, second_call = events.list.call_args_list
        assert first_call.kwargs["syncToken"] == "sync-8"
        assert first_call.kwargs["showDeleted"] is True
        assert second_call.kwargs["pageToken"] == "page-2"

    @pytest.mark.asyncio
    async def test_watch_events_sends_token_and_reads_expiration(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = MagicMock()
        events = service.events.return_value
        events.watch.return_value.execute.return_value = {
            "id": "chan-1",
            "resourceId": "res-1",
            "expiration": "1772539200000",
        }
        provider = _provider(monkeypatch, service)

        channel = await provider.watch_events(
            "token",
            "primary",
            channel_id="chan-1",
            address="https://sync.example.com/webhook/google-calendar",
            ttl_seconds=3600,
            token="segredo",
        )

        body = events.watch.call_args.kwargs["body"]
        assert body["type"] == "web_hook"
        assert body["token"] == "segredo"
        assert channel.resource_id == "res-1"
        assert channel.expiration == datetime(2026, 3, 3, 12, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_http_error_becomes_provider_http_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = MagicMock()
        service.events.return_value.get.return_value.execute.side_effect = _http_error(
            403, "rateLimitExceeded"
        )
        provider = _provider(monkeypatch, service)

        with pytest.raises(ProviderHttpError) as exc_info:
            await provider.get_event("token", "primary", "evt-1")

        assert exc_info.value.status_code == 403
        assert exc_info.value.reason == "rateLimitExceeded"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_connection_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        service = MagicMock()
        service.channels.return_value.stop.return_value.execute.side_effect = (
            httplib2.ServerNotFoundError("dns")
        )
        provider = _provider(monkeypatch, service)

        with pytest.raises(ConnectionError):
            await provider.stop_channel("token", "chan-1", "res-1")
