"""Eventos e canais do Google Calendar vistos pelo motor de sincronizacao."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - usado em runtime pelo schema do Pydantic
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

EventStatus = Literal["confirmed", "tentative", "cancelled"]
ResourceState = Literal["sync", "exists", "not_exists"]

# Chave em extendedProperties.private que liga o evento ao agendamento.
APPOINTMENT_ID_PROPERTY = "appointmentId"


class ExternalEvent(BaseModel):
    """Estado atual de um evento no calendario externo."""

    model_config = ConfigDict(extra="ignore")

    event_id: str = Field(..., description="Identificador do evento no Google.")
    status: EventStatus = Field(default="confirmed")
    summary: str = Field(default="")
    description: str = Field(default="")
    location: str = Field(default="")
    start: datetime | None = Field(default=None)
    end: datetime | None = Field(default=None)
    updated: datetime | None = Field(default=None, description="updated do Google (UTC).")
    html_link: str = Field(default="")
    appointment_id: str | None = Field(
        default=None,
        description="ID do agendamento gravado em extendedProperties.private.",
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


class EventPage(BaseModel):
    """Resultado de listagem incremental (events.list com syncToken)."""

    events: list[ExternalEvent] = Field(default_factory=list)
    next_sync_token: str | None = Field(default=None)


class WebhookChannel(BaseModel):
    """Canal de push registrado no Google (events.watch)."""

    channel_id: str
    resource_id: str
    expiration: datetime


class WebhookNotification(BaseModel):
    """Notificacao recebida via headers X-Goog-*."""

    channel_id: str
    resource_state: ResourceState
    resource_id: str | None = None
    message_number: int | None = None
    channel_token: str | None = None


__all__ = [
    "APPOINTMENT_ID_PROPERTY",
    "EventPage",
    "EventStatus",
    "ExternalEvent",
    "ResourceState",
    "WebhookChannel",
    "WebhookNotification",
]
