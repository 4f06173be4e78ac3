"""Modelo de dominio do agendamento.

O armazenamento de agendamentos e um colaborador externo; o motor de
sincronizacao le o estado atual para empurra-lo ao calendario e so cria
agendamentos ao importar eventos externos confirmados pelo operador.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - usado em runtime pelo schema do Pydantic
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

AppointmentStatus = Literal[
    "pending",
    "confirmed",
    "checked_in",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
]

INACTIVE_STATUSES: frozenset[str] = frozenset({"cancelled", "no_show"})


class Appointment(BaseModel):
    """Agendamento como lido do store externo."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Identificador do agendamento.")
    owner_id: str = Field(..., description="Operador (negocio) dono da agenda.")
    title: str = Field(..., description="Titulo exibido no evento externo.")
    description: str = Field(default="", description="Observacoes do agendamento.")
    location: str = Field(default="", description="Endereco ou link do encontro.")
    start_at: datetime = Field(..., description="Inicio (UTC).")
    end_at: datetime = Field(..., description="Fim (UTC).")
    status: AppointmentStatus = Field(default="confirmed")
    updated_at: datetime = Field(..., description="Ultima alteracao local (UTC).")

    @property
    def is_active(self) -> bool:
        """Cancelado ou no-show conta como removido para fins de sincronizacao."""
        return self.status not in INACTIVE_STATUSES


__all__ = ["INACTIVE_STATUSES", "Appointment", "AppointmentStatus"]
