"""Helpers internos de parsing para respostas da Google Calendar API."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from app.domain.calendar_event import APPOINTMENT_ID_PROPERTY, ExternalEvent

if TYPE_CHECKING:
    from googleapiclient.errors import HttpError


_EVENT_STATUSES = {"confirmed", "tentative", "cancelled"}


def parse_google_datetime(value: Any) -> datetime | None:
    """Converte RFC3339 do Google em datetime UTC (None se inválido)."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed.astimezone(UTC)


def parse_channel_expiration(value: Any) -> datetime | None:
    """Expiração de canal vem em milissegundos desde epoch (string)."""
    try:
        millis = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(millis / 1000, tz=UTC)


def map_external_event(payload: dict[str, Any]) -> ExternalEvent:
    status = str(payload.get("status") or "confirmed")
    private = (payload.get("extendedProperties") or {}).get("private") or {}
    return ExternalEvent(
        event_id=str(payload.get("id") or ""),
        status=status if status in _EVENT_STATUSES else "confirmed",
        summary=str(payload.get("summary") or ""),
        description=str(payload.get("description") or ""),
        location=str(payload.get("location") or ""),
        start=_extract_event_datetime(payload.get("start")),
        end=_extract_event_datetime(payload.get("end")),
        updated=parse_google_datetime(payload.get("updated")),
        html_link=str(payload.get("htmlLink") or ""),
        appointment_id=private.get(APPOINTMENT_ID_PROPERTY),
    )


def http_status(exc: HttpError) -> int | None:
    response = getattr(exc, "resp", None)
    return int(response.status) if response and getattr(response, "status", None) else None


def http_error_reason(exc: HttpError) -> str | None:
    """Extrai error.errors[0].reason do corpo (ex.: "rateLimitExceeded")."""
    content = getattr(exc, "content", None)
    if not content:
        return None
    try:
        body = json.loads(content.decode("utf-8") if isinstance(content, bytes) else content)
    except (ValueError, UnicodeDecodeError):
        return None
    error = body.get("error") if isinstance(body, dict) else None
    errors = error.get("errors") if isinstance(error, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        reason = errors[0].get("reason")
        return str(reason) if reason else None
    return None


def _extract_event_datetime(value: Any) -> datetime | None:
    # Eventos cancelados chegam sem start/end.
    if not isinstance(value, dict):
        return None
    if parsed := parse_google_datetime(value.get("dateTime")):
        return parsed
    if isinstance(value.get("date"), str):
        try:
            return datetime.fromisoformat(value["date"]).replace(tzinfo=UTC)
        except ValueError:
            return None
    return None
