"""Endpoints para o cron externo (Cloud Scheduler).

- POST /calendar/jobs/renew-webhooks: renova canais próximos de expirar
- POST /calendar/jobs/retry-queue: drena os itens vencidos da fila de retry

Autenticação por segredo compartilhado (Bearer ou ?secret=).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.routes.calendar.auth import check_cron_secret, get_engine
from app.observability import reset_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/renew-webhooks")
async def renew_webhooks(request: Request) -> JSONResponse:
    rejected = check_cron_secret(request)
    if rejected is not None:
        return rejected

    token = set_correlation_id(request.headers.get("x-correlation-id"))
    try:
        summary = await get_engine(request).renewal_job.run()
    finally:
        reset_correlation_id(token)

    return JSONResponse(
        content={
            "total": summary.total,
            "renewed": summary.renewed,
            "failed": summary.failed,
            "skipped": summary.skipped,
            "deactivated": summary.deactivated,
            "results": [
                {
                    "connection_id": result.connection_id,
                    "status": result.status,
                    "error_code": result.error_code,
                    "expiration": result.expiration.isoformat() if result.expiration else None,
                }
                for result in summary.results
            ],
        }
    )


@router.post("/retry-queue")
async def drain_retry_queue(request: Request) -> JSONResponse:
    rejected = check_cron_secret(request)
    if rejected is not None:
        return rejected

    engine = get_engine(request)
    token = set_correlation_id(request.headers.get("x-correlation-id"))
    try:
        summary = await engine.drain_retry_queue()
        stats = await engine.retry_queue.stats()
    finally:
        reset_correlation_id(token)

    return JSONResponse(
        content={
            "processed": summary.processed,
            "succeeded": summary.succeeded,
            "rescheduled": summary.rescheduled,
            "failed_permanently": summary.failed_permanently,
            "errors": summary.errors,
            "queue": {
                "pending": stats.pending,
                "failed_permanently": stats.failed_permanently,
                "next_retry_at": stats.next_retry_at.isoformat() if stats.next_retry_at else None,
            },
        }
    )
