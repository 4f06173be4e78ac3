"""Cliente da Google Calendar API com pacing, backoff e deadline por chamada.

Toda chamada:
1. respeita o espaçamento mínimo entre requisições da mesma conexão;
2. obtém um access token válido no CredentialVault;
3. roda com deadline (asyncio.timeout);
4. em 429/5xx/timeout repete com backoff exponencial (com teto e jitter)
   até `max_attempts`, depois levanta RateLimitExceededError ou
   ProviderUnavailableError.

Os sleeps de backoff e de pacing não seguram nenhum lock.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from app.observability import record_provider_retry, record_quota_usage
from utils.errors import (
    ProviderHttpError,
    ProviderUnavailableError,
    RateLimitExceededError,
    RedisConnectionError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime
    from typing import Any

    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import EventPage, ExternalEvent, WebhookChannel
    from app.protocols.calendar_provider import CalendarProviderProtocol
    from app.protocols.quota_counter import QuotaCounterProtocol
    from app.services.credential_vault import CredentialVault

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COMPONENT = "calendar_api_client"
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})
GONE_STATUS = frozenset({404, 410})


def is_rate_limited(exc: ProviderHttpError) -> bool:
    return exc.status_code == 429 or (exc.status_code == 403 and exc.reason in RATE_LIMIT_REASONS)


def is_retryable(exc: ProviderHttpError) -> bool:
    return exc.status_code in RETRYABLE_STATUS or is_rate_limited(exc)


@dataclass(frozen=True)
class BackoffPolicy:
    """Backoff exponencial: base * 2^(tentativa-1), limitado a max_delay, + jitter."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 32.0
    jitter: float = 1.0

    def delay_for(self, attempt: int, rng: random.Random) -> float:
        exponential = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return exponential + (rng.uniform(0, self.jitter) if self.jitter else 0.0)


class RateLimitedCalendarClient:
    def __init__(
        self,
        *,
        provider: CalendarProviderProtocol,
        vault: CredentialVault,
        policy: BackoffPolicy | None = None,
        min_interval_seconds: float = 0.1,
        request_timeout_seconds: float = 20.0,
        quota_counter: QuotaCounterProtocol | None = None,
        daily_quota_limit: int = 1_000_000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._provider = provider
        self._vault = vault
        self._policy = policy or BackoffPolicy()
        self._min_interval = min_interval_seconds
        self._request_timeout = request_timeout_seconds
        self._quota = quota_counter
        self._daily_quota_limit = daily_quota_limit
        self._sleep = sleep
        self._monotonic = monotonic
        self._rng = rng or random.Random()
        self._next_slot: dict[str, float] = {}

    async def create_event(
        self, connection: CalendarConnection, body: dict[str, Any]
    ) -> ExternalEvent:
        return await self._call(
            connection.id,
            "create_event",
            lambda token: self._provider.insert_event(token, connection.calendar_id, body),
        )

    async def update_event(
        self, connection: CalendarConnection, event_id: str, body: dict[str, Any]
    ) -> ExternalEvent:
        return await self._call(
            connection.id,
            "update_event",
            lambda token: self._provider.update_event(
                token, connection.calendar_id, event_id, body
            ),
        )

    async def delete_event(self, connection: CalendarConnection, event_id: str) -> bool:
        """Remove o evento; False se ele já não existia (404/410)."""
        try:
            await self._call(
                connection.id,
                "delete_event",
                lambda token: self._provider.delete_event(token, connection.calendar_id, event_id),
            )
        except ProviderHttpError as exc:
            if exc.status_code in GONE_STATUS:
                return False
            raise
        return True

    async def get_event(self, connection: CalendarConnection, event_id: str) -> ExternalEvent | None:
        """Estado atual do evento; None se removido (404/410)."""
        try:
            return await self._call(
                connection.id,
                "get_event",
                lambda token: self._provider.get_event(token, connection.calendar_id, event_id),
            )
        except ProviderHttpError as exc:
            if exc.status_code in GONE_STATUS:
                return None
            raise

    async def list_events_since(
        self,
        connection: CalendarConnection,
        *,
        sync_token: str | None,
        updated_min: datetime | None = None,
    ) -> EventPage:
        return await self._call(
            connection.id,
            "list_events",
            lambda token: self._provider.list_events(
                token,
                connection.calendar_id,
                sync_token=sync_token,
                updated_min=updated_min,
            ),
        )

    async def list_events_in_window(
        self,
        connection: CalendarConnection,
        *,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ExternalEvent]:
        """Eventos não cancelados com início na janela (usado pela importação)."""
        page = await self._call(
            connection.id,
            "list_events",
            lambda token: self._provider.list_events(
                token,
                connection.calendar_id,
                time_min=time_min,
                time_max=time_max,
            ),
        )
        return [event for event in page.events if not event.is_cancelled]

    async def watch_events(
        self,
        connection: CalendarConnection,
        *,
        channel_id: str,
        callback_url: str,
        ttl_seconds: int,
        channel_token: str | None = None,
    ) -> WebhookChannel:
        return await self._call(
            connection.id,
            "watch_events",
            lambda token: self._provider.watch_events(
                token,
                connection.calendar_id,
                channel_id=channel_id,
                address=callback_url,
                ttl_seconds=ttl_seconds,
                token=channel_token,
            ),
        )

    async def stop_channel(
        self, connection: CalendarConnection, channel_id: str, resource_id: str
    ) -> None:
        await self._call(
            connection.id,
            "stop_channel",
            lambda token: self._provider.stop_channel(token, channel_id, resource_id),
        )

    async def _call(
        self,
        connection_id: str,
        operation: str,
        send: Callable[[str], Awaitable[T]],
    ) -> T:
        last_error: Exception | None = None
        rate_limited = False
        for attempt in range(1, self._policy.max_attempts + 1):
            await self._pace(connection_id)
            access_token = await self._vault.get_valid_access_token(connection_id)
            await self._count_quota(connection_id)
            status_code: int | None = None
            try:
                async with asyncio.timeout(self._request_timeout):
                    return await send(access_token)
            except ProviderHttpError as exc:
                if not is_retryable(exc):
                    raise
                last_error, status_code = exc, exc.status_code
                rate_limited = is_rate_limited(exc)
            except (TimeoutError, ConnectionError) as exc:
                last_error, rate_limited = exc, False

            if attempt == self._policy.max_attempts:
                break
            delay = self._policy.delay_for(attempt, self._rng)
            record_provider_retry(operation, attempt, delay, status_code)
            await self._sleep(delay)

        logger.warning(
            "provider_attempts_exhausted",
            extra={
                "component": _COMPONENT,
                "action": operation,
                "result": "rate_limited" if rate_limited else "unavailable",
                "connection_id": connection_id,
                "attempts": self._policy.max_attempts,
                "error_type": type(last_error).__name__,
            },
        )
        if rate_limited:
            raise RateLimitExceededError(
                f"{operation}: limite de requisições persistente",
                attempts=self._policy.max_attempts,
            ) from last_error
        raise ProviderUnavailableError(
            f"{operation}: Google Calendar indisponível",
            status_code=getattr(last_error, "status_code", None),
        ) from last_error

    async def _pace(self, connection_id: str) -> None:
        # Reserva o próximo slot antes de dormir: chamadas concorrentes da
        # mesma conexão ficam espaçadas sem lock.
        now = self._monotonic()
        slot = max(now, self._next_slot.get(connection_id, 0.0))
        self._next_slot[connection_id] = slot + self._min_interval
        wait = slot - now
        if wait > 0:
            await self._sleep(wait)

    async def _count_quota(self, connection_id: str) -> None:
        if self._quota is None:
            return
        try:
            used = await self._quota.increment(f"connection:{connection_id}")
        except RedisConnectionError:
            logger.warning(
                "quota_counter_unavailable",
                extra={"component": _COMPONENT, "connection_id": connection_id},
            )
            return
        record_quota_usage(f"connection:{connection_id}", used, self._daily_quota_limit)
