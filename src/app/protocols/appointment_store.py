"""Contrato do store de agendamentos (colaborador externo)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.appointment import Appointment


class AppointmentStoreProtocol(Protocol):
    """Leitura de agendamentos; a única escrita é a criação via importação."""

    async def get(self, appointment_id: str) -> Appointment | None:
        """Retorna o agendamento ou None se removido."""
        ...

    async def list_for_owner(
        self,
        owner_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[Appointment]:
        """Agendamentos do operador com início em [start, end)."""
        ...

    async def create(self, appointment: Appointment) -> Appointment:
        """Grava um agendamento novo importado do calendário externo."""
        ...

    async def delete(self, appointment_id: str) -> None:
        """Desfaz uma criação cuja importação não pôde ser concluída."""
        ...
