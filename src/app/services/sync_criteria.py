"""Critérios para decidir se um agendamento deve ir para o calendário."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.appointment import Appointment


@dataclass(frozen=True)
class SyncCriteria:
    statuses: frozenset[str]
    sync_past: bool = False
    sync_completed: bool = True

    def evaluate(self, appointment: Appointment, *, now: datetime, force: bool = False) -> str | None:
        """Retorna o motivo para não sincronizar, ou None se deve sincronizar.

        `force` ignora todos os critérios.
        """
        if force:
            return None
        if appointment.status not in self.statuses:
            return f"status '{appointment.status}' fora dos status sincronizados"
        if appointment.status == "completed" and not self.sync_completed:
            return "agendamentos concluídos não são sincronizados"
        if not self.sync_past and appointment.end_at < now:
            return "agendamento no passado"
        return None
