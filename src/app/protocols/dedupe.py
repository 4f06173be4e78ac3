"""Contrato de dedupe de notificações de webhook."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AsyncDedupeProtocol(ABC):
    """Dedupe atômico assíncrono.

    Método canônico:
    - seen(key, ttl) -> bool
      True se a chave já foi vista (duplicado); senão marca com TTL e
      retorna False.
    """

    @abstractmethod
    async def seen(self, key: str, ttl: int) -> bool:
        """Verifica e marca a chave de forma atômica.

        Args:
            key: Chave opaca (ex.: "<channel_id>:<message_number>")
            ttl: TTL em segundos
        """
