"""Job de renovação dos canais de webhook próximos de expirar.

Roda diariamente (APScheduler ou endpoint de cron). Cada conexão é renovada
de forma isolada, com deadline próprio; uma falha não interrompe as demais.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Literal

from app.domain.calendar_connection import utc_now
from app.services.error_classifier import classify_error
from utils.errors import ConnectionFatalError, InfrastructureError, ProviderHttpError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.services.sync_logger import SyncLogger
    from app.services.webhook_registration import WebhookRegistrar

logger = logging.getLogger(__name__)

_COMPONENT = "webhook_renewal"

RenewalStatus = Literal["renewed", "failed", "skipped", "deactivated"]


@dataclass(frozen=True)
class RenewalResult:
    connection_id: str
    status: RenewalStatus
    error_code: str | None = None
    expiration: datetime | None = None


@dataclass
class RenewalSummary:
    total: int = 0
    renewed: int = 0
    failed: int = 0
    skipped: int = 0
    deactivated: int = 0
    results: list[RenewalResult] = field(default_factory=list)

    def add(self, result: RenewalResult) -> None:
        self.results.append(result)
        setattr(self, result.status, getattr(self, result.status) + 1)


class WebhookRenewalJob:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        registrar: WebhookRegistrar,
        sync_logger: SyncLogger,
        threshold: timedelta = timedelta(hours=24),
        spacing_seconds: float = 0.1,
        deadline_seconds: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._connections = connection_store
        self._registrar = registrar
        self._sync_logger = sync_logger
        self._threshold = threshold
        self._spacing = spacing_seconds
        self._deadline = deadline_seconds
        self._clock = clock
        self._sleep = sleep

    async def run(self) -> RenewalSummary:
        started = time.perf_counter()
        now = self._clock()
        candidates = await self._connections.list_expiring_webhooks(now + self._threshold)
        summary = RenewalSummary(total=len(candidates))

        for index, candidate in enumerate(candidates):
            if index and self._spacing:
                await self._sleep(self._spacing)
            summary.add(await self._renew_one(candidate.id))

        if summary.total:
            await self._sync_logger.record(
                operation="renew",
                sync_type="push",
                status=_summary_status(summary),
                details={
                    "total": summary.total,
                    "renewed": summary.renewed,
                    "failed": summary.failed,
                    "skipped": summary.skipped,
                    "deactivated": summary.deactivated,
                },
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        logger.info(
            "webhook_renewal_finished",
            extra={
                "component": _COMPONENT,
                "total": summary.total,
                "renewed": summary.renewed,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "deactivated": summary.deactivated,
            },
        )
        return summary

    async def _renew_one(self, connection_id: str) -> RenewalResult:
        try:
            async with asyncio.timeout(self._deadline):
                # Estado atual: outra instância pode ter renovado ou desativado.
                connection = await self._connections.get(connection_id)
                if not self._still_due(connection):
                    return RenewalResult(connection_id, "skipped")
                channel = await self._registrar.renew(connection)
        except ConnectionFatalError as exc:
            return RenewalResult(connection_id, "deactivated", error_code=exc.error_code)
        except (InfrastructureError, ProviderHttpError, TimeoutError, ConnectionError) as exc:
            classified = classify_error(exc)
            logger.warning(
                "webhook_renewal_failed",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection_id,
                    "error_code": classified.code,
                    "error_type": type(exc).__name__,
                },
            )
            return RenewalResult(connection_id, "failed", error_code=classified.code)
        return RenewalResult(connection_id, "renewed", expiration=channel.expiration)

    def _still_due(self, connection: CalendarConnection | None) -> bool:
        return (
            connection is not None
            and connection.is_active
            and connection.webhook_expires_within(self._clock(), self._threshold)
        )


def _summary_status(summary: RenewalSummary) -> Literal["success", "failed", "partial"]:
    problems = summary.failed + summary.deactivated
    if not problems:
        return "success"
    return "failed" if problems == summary.total else "partial"
