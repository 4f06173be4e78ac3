"""Redis Dedupe Store — dedupe de notificações de webhook.

Usa SET NX EX (set if not exists) para operação atômica entre instâncias.

Contrato de Keys:
    As keys são IDs opacos ("<channel_id>:<message_number>").
    Keys são logadas parcialmente em DEBUG.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.protocols.dedupe import AsyncDedupeProtocol
from utils.errors import RedisConnectionError

if TYPE_CHECKING:
    from redis.asyncio import Redis as AsyncRedis

logger = logging.getLogger(__name__)

DEDUPE_PREFIX = "calendar:dedupe:"


class RedisDedupeStore(AsyncDedupeProtocol):
    """Store de dedupe usando Redis assíncrono."""

    def __init__(self, async_redis_client: AsyncRedis) -> None:
        self._redis = async_redis_client

    def _key(self, key: str) -> str:
        return f"{DEDUPE_PREFIX}{key}"

    async def seen(self, key: str, ttl: int) -> bool:
        """SET NX EX: False quando criou a chave (novo), True quando já existia."""
        try:
            was_set = await self._redis.set(self._key(key), "1", nx=True, ex=ttl)
        except Exception as exc:
            raise RedisConnectionError("Falha ao consultar dedupe no Redis") from exc
        is_duplicate = not was_set
        if is_duplicate:
            key_masked = key[:8] + "..." if len(key) > 8 else key
            logger.debug("dedupe_duplicate_detected", extra={"key": key_masked})
        return is_duplicate
