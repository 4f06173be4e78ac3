"""Fila de retry com tiers fixos de espera.

Máquina de estados por item (attempt_count = índice do tier):

    pending(0) --falha--> pending(1) --falha--> ... --falha--> failed_permanently
        |                     |
        +------sucesso--------+--> succeeded (item removido da fila)

Os tiers padrão são 1 min, 5 min e 15 min. A drenagem é feita por varredura
periódica (`drain`), não por timers por item, o que a torna determinística
em testes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from app.domain.calendar_connection import utc_now
from app.domain.sync_records import RetryAttempt, RetryQueueItem

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from datetime import datetime

    from app.domain.sync_records import RetryOperation, SyncOperation
    from app.protocols.retry_queue_store import RetryQueueStoreProtocol
    from app.services.sync_logger import SyncLogger

logger = logging.getLogger(__name__)

_COMPONENT = "retry_queue"
RETRY_LIMIT_EXCEEDED = "RETRY_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class RetryResult:
    """Resultado de uma re-tentativa, devolvido pelo executor."""

    succeeded: bool
    error: str = ""
    error_code: str | None = None
    retryable: bool = True
    # Conexão pausada: adia sem consumir tier.
    deferred: bool = False


@dataclass
class RetryDrainSummary:
    processed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    deferred: int = 0
    failed_permanently: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class RetryQueueStats:
    pending: int
    failed_permanently: int
    next_retry_at: datetime | None


class RetryQueue:
    def __init__(
        self,
        *,
        store: RetryQueueStoreProtocol,
        sync_logger: SyncLogger,
        tiers_seconds: Sequence[int] = (60, 300, 900),
        batch_size: int = 50,
        item_spacing_seconds: float = 0.2,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not tiers_seconds:
            raise ValueError("tiers_seconds não pode ser vazio")
        self._store = store
        self._sync_logger = sync_logger
        self._tiers = tuple(tiers_seconds)
        self._batch_size = batch_size
        self._item_spacing = item_spacing_seconds
        self._clock = clock
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return len(self._tiers)

    async def enqueue(
        self,
        *,
        connection_id: str,
        appointment_id: str | None,
        operation: RetryOperation,
        error: str,
        error_code: str | None = None,
        external_event_id: str | None = None,
    ) -> RetryQueueItem:
        """Cria item no primeiro tier; se já houver um pendente para o alvo, só atualiza o erro."""
        now = self._clock()
        existing = await self._store.find_pending(connection_id, appointment_id)
        if existing is not None:
            updated = existing.model_copy(
                update={
                    "operation": operation,
                    "last_error": error,
                    "last_error_code": error_code,
                    "updated_at": now,
                }
            )
            await self._store.save(updated)
            return updated

        item = RetryQueueItem(
            connection_id=connection_id,
            appointment_id=appointment_id,
            operation=operation,
            external_event_id=external_event_id,
            next_retry_at=now + timedelta(seconds=self._tiers[0]),
            last_error=error,
            last_error_code=error_code,
            history=[RetryAttempt(attempted_at=now, error=error, error_code=error_code)],
            created_at=now,
            updated_at=now,
        )
        await self._store.add(item)
        logger.info(
            "retry_enqueued",
            extra={
                "component": _COMPONENT,
                "connection_id": connection_id,
                "appointment_id": appointment_id,
                "operation": operation,
                "error_code": error_code,
            },
        )
        return item

    async def due_items(self, now: datetime | None = None) -> list[RetryQueueItem]:
        return await self._store.list_due(now or self._clock(), limit=self._batch_size)

    async def mark_succeeded(self, item: RetryQueueItem) -> RetryQueueItem:
        await self._store.delete(item.id)
        logger.info(
            "retry_succeeded",
            extra={
                "component": _COMPONENT,
                "connection_id": item.connection_id,
                "appointment_id": item.appointment_id,
                "attempt_count": item.attempt_count + 1,
            },
        )
        return item.model_copy(update={"state": "succeeded", "updated_at": self._clock()})

    async def mark_failed(
        self,
        item: RetryQueueItem,
        error: str,
        *,
        error_code: str | None = None,
        retryable: bool = True,
    ) -> RetryQueueItem:
        """Avança um tier; esgotados os tiers (ou erro não retentável) vira permanente.

        O item é relido do store: um `enqueue` concorrente pode ter atualizado
        operação e erro depois que a drenagem o leu.
        """
        now = self._clock()
        current = await self._store.get(item.id)
        if current is None:
            return item
        item = current
        attempt_count = item.attempt_count + 1
        history = [*item.history, RetryAttempt(attempted_at=now, error=error, error_code=error_code)]

        if not retryable or attempt_count >= self.max_retries:
            failed = item.model_copy(
                update={
                    "attempt_count": attempt_count,
                    "state": "failed_permanently",
                    "last_error": error,
                    "last_error_code": error_code,
                    "history": history,
                    "updated_at": now,
                }
            )
            await self._store.save(failed)
            await self._sync_logger.record(
                operation=_log_operation(item.operation),
                sync_type="push",
                status="failed",
                connection_id=item.connection_id,
                appointment_id=item.appointment_id,
                external_event_id=item.external_event_id,
                error_code=RETRY_LIMIT_EXCEEDED,
                error_message=error,
                details={
                    "retry_item_id": item.id,
                    "attempts": attempt_count,
                    "last_error_code": error_code,
                    "history": [h.model_dump(mode="json") for h in history],
                },
            )
            return failed

        rescheduled = item.model_copy(
            update={
                "attempt_count": attempt_count,
                "next_retry_at": now + timedelta(seconds=self._tiers[attempt_count]),
                "last_error": error,
                "last_error_code": error_code,
                "history": history,
                "updated_at": now,
            }
        )
        await self._store.save(rescheduled)
        return rescheduled

    async def defer(self, item: RetryQueueItem, reason: str) -> RetryQueueItem:
        """Reagenda no mesmo tier, sem contar tentativa."""
        now = self._clock()
        current = await self._store.get(item.id)
        if current is None:
            return item
        deferred = current.model_copy(
            update={
                "next_retry_at": now + timedelta(seconds=self._tiers[current.attempt_count]),
                "updated_at": now,
            }
        )
        await self._store.save(deferred)
        logger.info(
            "retry_deferred",
            extra={
                "component": _COMPONENT,
                "connection_id": item.connection_id,
                "appointment_id": item.appointment_id,
                "reason": reason,
            },
        )
        return deferred

    async def drain(
        self,
        execute: Callable[[RetryQueueItem], Awaitable[RetryResult]],
        *,
        now: datetime | None = None,
    ) -> RetryDrainSummary:
        """Processa os itens vencidos (um lote) em série, espaçados."""
        summary = RetryDrainSummary()
        items = await self.due_items(now)
        for index, item in enumerate(items):
            if index and self._item_spacing:
                await self._sleep(self._item_spacing)
            summary.processed += 1
            result = await execute(item)
            if result.succeeded:
                await self.mark_succeeded(item)
                summary.succeeded += 1
                continue
            if result.deferred:
                await self.defer(item, result.error)
                summary.deferred += 1
                continue
            updated = await self.mark_failed(
                item,
                result.error,
                error_code=result.error_code,
                retryable=result.retryable,
            )
            if updated.state == "failed_permanently":
                summary.failed_permanently += 1
                summary.errors.append({"item_id": item.id, "error": result.error})
            else:
                summary.rescheduled += 1

        if summary.processed:
            logger.info(
                "retry_queue_drained",
                extra={
                    "component": _COMPONENT,
                    "processed": summary.processed,
                    "succeeded": summary.succeeded,
                    "rescheduled": summary.rescheduled,
                    "failed_permanently": summary.failed_permanently,
                },
            )
        return summary

    async def stats(self, connection_id: str | None = None) -> RetryQueueStats:
        return RetryQueueStats(
            pending=await self._store.count(connection_id, state="pending"),
            failed_permanently=await self._store.count(connection_id, state="failed_permanently"),
            next_retry_at=await self._store.next_due_at(connection_id),
        )

    async def failed_items(self, connection_id: str | None = None) -> list[RetryQueueItem]:
        return await self._store.list_failed(connection_id)


def _log_operation(operation: RetryOperation) -> SyncOperation:
    return "update" if operation == "sync_changes" else operation
