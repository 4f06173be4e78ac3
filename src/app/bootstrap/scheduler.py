"""Jobs periódicos in-process: renovação de webhooks e drenagem da fila de retry.

Só roda com CALENDAR_SCHEDULER_ENABLED=true. Em deploys com várias
instâncias, preferir o cron externo chamando /calendar/jobs/*.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.observability import reset_correlation_id, set_correlation_id

if TYPE_CHECKING:
    from app.bootstrap.dependencies import CalendarSyncEngine

logger = logging.getLogger(__name__)

RENEWAL_JOB_ID = "calendar_webhook_renewal"
RETRY_JOB_ID = "calendar_retry_queue"


def create_scheduler(engine: CalendarSyncEngine) -> AsyncIOScheduler:
    """Cria o AsyncIOScheduler com os dois jobs (não inicia)."""
    settings = engine.settings
    scheduler = AsyncIOScheduler(timezone="UTC")

    async def run_renewal() -> None:
        token = set_correlation_id()
        try:
            summary = await engine.renewal_job.run()
            logger.info(
                "scheduled_renewal_done",
                extra={"component": "scheduler", "renewed": summary.renewed, "failed": summary.failed},
            )
        finally:
            reset_correlation_id(token)

    async def run_retry_drain() -> None:
        token = set_correlation_id()
        try:
            await engine.drain_retry_queue()
        finally:
            reset_correlation_id(token)

    scheduler.add_job(
        run_renewal,
        trigger=IntervalTrigger(seconds=settings.renewal_interval_seconds),
        id=RENEWAL_JOB_ID,
        name="Calendar webhook renewal",
        misfire_grace_time=300,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_retry_drain,
        trigger=IntervalTrigger(seconds=settings.retry_sweep_interval_seconds),
        id=RETRY_JOB_ID,
        name="Calendar retry queue drain",
        misfire_grace_time=60,
        coalesce=True,
        max_instances=1,
    )
    return scheduler
