"""Contrato de contador de quota da API por janela."""

from __future__ import annotations

from abc import ABC, abstractmethod


class QuotaCounterProtocol(ABC):
    """Contador por escopo (conexão ou global) com reset na virada da janela."""

    @abstractmethod
    async def increment(self, scope: str, *, window_seconds: int = 86400) -> int:
        """Incrementa e retorna o total da janela corrente."""

    @abstractmethod
    async def current(self, scope: str) -> int: ...
