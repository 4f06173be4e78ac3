"""Pool fixo de workers para processar notificações fora do request.

Fila limitada: quando cheia, o job é rejeitado e registrado (o webhook já
respondeu 200 e a próxima notificação ou a varredura de retry cobre a perda).
Jobs com a mesma chave ainda pendentes na fila são coalescidos.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from app.observability import record_queue_rejection

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

_COMPONENT = "sync_worker_pool"


class SyncWorkerPool:
    def __init__(self, size: int = 4, max_queue: int = 100) -> None:
        if size < 1:
            raise ValueError("size deve ser >= 1")
        self._size = size
        self._queue: asyncio.Queue[tuple[str, Callable[[], Awaitable[Any]]]] = asyncio.Queue(
            maxsize=max_queue
        )
        self._pending_keys: set[str] = set()
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"sync-worker-{index}")
            for index in range(self._size)
        ]
        logger.info(
            "sync_worker_pool_started",
            extra={"component": _COMPONENT, "workers": self._size},
        )

    def submit(self, key: str, job: Callable[[], Awaitable[Any]]) -> bool:
        """Enfileira o job. False se rejeitado por fila cheia."""
        if key in self._pending_keys:
            logger.debug(
                "sync_job_coalesced",
                extra={"component": _COMPONENT, "job_key": key},
            )
            return True
        try:
            self._queue.put_nowait((key, job))
        except asyncio.QueueFull:
            logger.warning(
                "sync_job_rejected",
                extra={
                    "component": _COMPONENT,
                    "job_key": key,
                    "queue_size": self._queue.qsize(),
                    "result": "rejected",
                },
            )
            record_queue_rejection(key, self._queue.qsize())
            return False
        self._pending_keys.add(key)
        return True

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self, timeout_seconds: float = 30.0) -> None:
        """Drena a fila até o timeout e cancela os workers."""
        if not self._running:
            return
        self._running = False
        try:
            await asyncio.wait_for(self._queue.join(), timeout_seconds)
        except TimeoutError:
            logger.warning(
                "sync_worker_pool_drain_timeout",
                extra={
                    "component": _COMPONENT,
                    "pending_jobs": self._queue.qsize(),
                    "timeout_seconds": timeout_seconds,
                },
            )
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("sync_worker_pool_stopped", extra={"component": _COMPONENT})

    async def _worker(self, index: int) -> None:
        while True:
            key, job = await self._queue.get()
            self._pending_keys.discard(key)
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception(
                    "sync_job_failed",
                    extra={
                        "component": _COMPONENT,
                        "job_key": key,
                        "worker": index,
                        "error_type": type(exc).__name__,
                    },
                )
            finally:
                with contextlib.suppress(ValueError):
                    self._queue.task_done()
