"""Contrato do repositório de mapeamentos agendamento <-> evento."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.sync_records import EventMapping, SyncDirection


class EventMappingStoreProtocol(ABC):
    """Repositório tipado de EventMapping.

    `create` é idempotente por appointment_id: chamar duas vezes devolve o
    mapeamento existente. Um (connection_id, external_event_id) já vinculado
    a outro agendamento levanta MappingInconsistentError.
    """

    @abstractmethod
    async def find(self, appointment_id: str) -> EventMapping | None: ...

    @abstractmethod
    async def find_by_external_id(
        self,
        connection_id: str,
        external_event_id: str,
    ) -> EventMapping | None: ...

    @abstractmethod
    async def create(self, mapping: EventMapping) -> EventMapping: ...

    @abstractmethod
    async def update_last_synced(
        self,
        mapping_id: str,
        instant: datetime,
        direction: SyncDirection = "push",
    ) -> None: ...

    @abstractmethod
    async def delete(self, mapping_id: str) -> None: ...

    @abstractmethod
    async def count_for_connection(self, connection_id: str) -> int: ...
