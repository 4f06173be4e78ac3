"""Locks asyncio por chave (agendamento, conexão).

Locks sem uso são descartados para o dicionário não crescer sem limite.
Válido apenas dentro de um processo; entre instâncias, a idempotência
dos repositórios cobre a corrida.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from utils.errors import LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """Segura o lock da chave; LockTimeoutError se não obtido em `timeout`."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                if timeout is None:
                    await lock.acquire()
                else:
                    await asyncio.wait_for(lock.acquire(), timeout)
            except TimeoutError as exc:
                raise LockTimeoutError(f"Lock '{key}' não obtido em {timeout}s") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
