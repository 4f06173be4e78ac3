"""Conversão agendamento -> corpo de evento do Google Calendar.

O agendamento é a fonte da verdade: o corpo gerado aqui é o que
sobrescreve o evento externo em qualquer conflito.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.domain.calendar_event import APPOINTMENT_ID_PROPERTY

if TYPE_CHECKING:
    from app.domain.appointment import Appointment
    from app.domain.calendar_event import ExternalEvent

EVENT_STATUS_BY_APPOINTMENT_STATUS: dict[str, str] = {
    "confirmed": "confirmed",
    "checked_in": "confirmed",
    "in_progress": "confirmed",
    "completed": "confirmed",
    "pending": "tentative",
    "cancelled": "cancelled",
    "no_show": "cancelled",
}


def build_event_body(appointment: Appointment, *, timezone: str) -> dict[str, Any]:
    return {
        "summary": appointment.title,
        "description": appointment.description,
        "location": appointment.location,
        "start": {"dateTime": appointment.start_at.isoformat(), "timeZone": timezone},
        "end": {"dateTime": appointment.end_at.isoformat(), "timeZone": timezone},
        "status": EVENT_STATUS_BY_APPOINTMENT_STATUS.get(appointment.status, "confirmed"),
        "extendedProperties": {"private": {APPOINTMENT_ID_PROPERTY: appointment.id}},
    }


def event_matches(appointment: Appointment, event: ExternalEvent) -> bool:
    """True se o evento externo já reflete os dados do agendamento."""
    return (
        event.summary == appointment.title
        and event.description == appointment.description
        and event.location == appointment.location
        and event.start == appointment.start_at
        and event.end == appointment.end_at
        and event.status == EVENT_STATUS_BY_APPOINTMENT_STATUS.get(appointment.status, "confirmed")
    )


def snapshot_appointment(appointment: Appointment) -> dict[str, Any]:
    """Estado local resumido para o payload de auditoria de conflitos."""
    return {
        "title": appointment.title,
        "start_at": appointment.start_at.isoformat(),
        "end_at": appointment.end_at.isoformat(),
        "location": appointment.location,
        "status": appointment.status,
        "updated_at": appointment.updated_at.isoformat(),
    }


def snapshot_event(event: ExternalEvent) -> dict[str, Any]:
    return {
        "summary": event.summary,
        "start": event.start.isoformat() if event.start else None,
        "end": event.end.isoformat() if event.end else None,
        "location": event.location,
        "status": event.status,
        "updated": event.updated.isoformat() if event.updated else None,
    }
