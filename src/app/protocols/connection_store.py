"""Contrato de persistência de conexões de agenda."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import WebhookChannel


class ConnectionStoreProtocol(ABC):
    """Repositório tipado de CalendarConnection.

    Invariante: no máximo uma conexão ativa por operador. `save` de uma
    conexão ativa desativa as demais ativas do mesmo operador.
    """

    @abstractmethod
    async def get(self, connection_id: str) -> CalendarConnection | None: ...

    @abstractmethod
    async def get_active_for_owner(self, owner_id: str) -> CalendarConnection | None: ...

    @abstractmethod
    async def find_by_channel(self, channel_id: str) -> CalendarConnection | None:
        """Busca a conexão dona do canal de webhook (ativa ou não)."""

    @abstractmethod
    async def list_active(self) -> list[CalendarConnection]: ...

    @abstractmethod
    async def list_expiring_webhooks(self, before: datetime) -> list[CalendarConnection]:
        """Conexões ativas com canal expirando até `before`, ordenadas pela expiração."""

    @abstractmethod
    async def save(self, connection: CalendarConnection) -> None:
        """Cria ou substitui a conexão."""

    @abstractmethod
    async def compare_and_set_tokens(
        self,
        connection_id: str,
        *,
        expected_version: int,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        token_expiry: datetime,
    ) -> bool:
        """Grava tokens só se `token_version` ainda for `expected_version`.

        Returns:
            True se gravou (e incrementou a versão); False se outra escrita venceu.
        """

    @abstractmethod
    async def update_webhook(self, connection_id: str, channel: WebhookChannel | None) -> None:
        """Persiste o canal atual; None limpa os campos de webhook."""

    @abstractmethod
    async def mark_webhook_stopped(self, connection_id: str) -> None:
        """Limpa channel/resource id mantendo a expiração (segue elegível à renovação)."""

    @abstractmethod
    async def update_sync_state(
        self,
        connection_id: str,
        *,
        last_sync_at: datetime,
        sync_token: str | None,
    ) -> None: ...

    @abstractmethod
    async def record_sync_result(
        self,
        connection_id: str,
        *,
        success: bool,
        pause_threshold: int,
    ) -> CalendarConnection | None:
        """Zera ou incrementa falhas consecutivas; pausa ao atingir o limite."""

    @abstractmethod
    async def resume(self, connection_id: str) -> None:
        """Retoma sincronização automática pausada."""

    @abstractmethod
    async def deactivate(self, connection_id: str, reason: str) -> None: ...
