"""Contrato de persistência da fila de retry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.sync_records import RetryQueueItem, RetryState


class RetryQueueStoreProtocol(ABC):
    """Repositório tipado de RetryQueueItem."""

    @abstractmethod
    async def add(self, item: RetryQueueItem) -> None: ...

    @abstractmethod
    async def get(self, item_id: str) -> RetryQueueItem | None: ...

    @abstractmethod
    async def find_pending(
        self,
        connection_id: str,
        appointment_id: str | None,
    ) -> RetryQueueItem | None:
        """Item pendente para o mesmo alvo (None = sincronização da conexão)."""

    @abstractmethod
    async def list_due(self, now: datetime, *, limit: int) -> list[RetryQueueItem]:
        """Itens pendentes com next_retry_at <= now, mais antigos primeiro."""

    @abstractmethod
    async def save(self, item: RetryQueueItem) -> None: ...

    @abstractmethod
    async def delete(self, item_id: str) -> None: ...

    @abstractmethod
    async def count(self, connection_id: str | None = None, *, state: RetryState) -> int: ...

    @abstractmethod
    async def next_due_at(self, connection_id: str | None = None) -> datetime | None: ...

    @abstractmethod
    async def list_failed(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[RetryQueueItem]:
        """Itens em failed_permanently (aguardando operador)."""
