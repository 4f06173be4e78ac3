"""Contador de quota da API em Redis (INCR + EXPIRE por janela)."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from app.protocols.quota_counter import QuotaCounterProtocol
from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

QUOTA_PREFIX = "calendar:quota:"
_DEFAULT_WINDOW_SECONDS = 86400


class RedisQuotaCounter(QuotaCounterProtocol):
    """Uma chave por (escopo, janela); a chave expira sozinha na virada."""

    def __init__(self, async_redis_client: AsyncRedis) -> None:
        self._redis = async_redis_client

    def _key(self, scope: str, window_seconds: int) -> str:
        window = int(time.time()) // window_seconds
        return f"{QUOTA_PREFIX}{scope}:{window}"

    async def increment(self, scope: str, *, window_seconds: int = _DEFAULT_WINDOW_SECONDS) -> int:
        key = self._key(scope, window_seconds)
        try:
            pipeline = self._redis.pipeline()
            pipeline.incr(key)
            pipeline.expire(key, window_seconds, nx=True)
            count, _ = await pipeline.execute()
        except Exception as exc:
            raise RedisConnectionError("Falha ao incrementar quota no Redis") from exc
        return int(count)

    async def current(self, scope: str) -> int:
        try:
            raw = await self._redis.get(self._key(scope, _DEFAULT_WINDOW_SECONDS))
        except Exception as exc:
            raise RedisConnectionError("Falha ao ler quota no Redis") from exc
        return int(raw) if raw else 0
