"""Contrato do log de auditoria de sincronização (append-only)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.sync_records import SyncLogEntry, SyncStatus


class SyncLogStoreProtocol(ABC):
    """Somente inclusão e leitura; entradas nunca são alteradas."""

    @abstractmethod
    async def append(self, entry: SyncLogEntry) -> None: ...

    @abstractmethod
    async def list_recent(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[SyncLogEntry]:
        """Entradas mais recentes primeiro."""

    @abstractmethod
    async def count(
        self,
        connection_id: str,
        *,
        since: datetime | None = None,
        status: SyncStatus | None = None,
    ) -> int: ...
