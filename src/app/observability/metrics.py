"""Registro de métricas via structured logging.

As métricas são logs estruturados (metric_type + dimensões) agregados
depois no Cloud Logging / BigQuery.

Métricas suportadas:
- latency: tempo de execução por componente/operação
- sync_outcome: contador de resultados de sincronização
- provider_retry: tentativas repetidas contra a API do Google
- queue_rejection: jobs recusados pelo pool de workers saturado
- quota_usage: chamadas à API no dia corrente
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def record_latency(
    component: str,
    operation: str,
    latency_ms: float,
    correlation_id: str | None = None,
) -> None:
    """Registra latência de operação.

    Args:
        component: Nome do componente (ex: "sync_processor")
        operation: Nome da operação (ex: "reconcile_appointment")
        latency_ms: Latência em milissegundos
        correlation_id: ID de correlação para rastreamento
    """
    logger.info(
        "metric_latency",
        extra={
            "metric_type": "latency",
            "component": component,
            "operation": operation,
            "latency_ms": round(latency_ms, 2),
            "correlation_id": correlation_id,
        },
    )


def record_sync_outcome(operation: str, status: str, sync_type: str) -> None:
    """Conta um resultado de sincronização (create/update/delete/...)."""
    logger.info(
        "metric_sync_outcome",
        extra={
            "metric_type": "sync_outcome",
            "operation": operation,
            "status": status,
            "sync_type": sync_type,
        },
    )


def record_provider_retry(
    operation: str,
    attempt: int,
    delay_seconds: float,
    status_code: int | None = None,
) -> None:
    """Registra uma nova tentativa após 429/5xx/timeout do provedor."""
    logger.warning(
        "metric_provider_retry",
        extra={
            "metric_type": "provider_retry",
            "operation": operation,
            "attempt": attempt,
            "delay_ms": round(delay_seconds * 1000, 1),
            "status_code": status_code,
        },
    )


def record_queue_rejection(job_key: str, queue_size: int) -> None:
    """Registra job recusado por backpressure do pool."""
    logger.warning(
        "metric_queue_rejection",
        extra={
            "metric_type": "queue_rejection",
            "job_key": job_key,
            "queue_size": queue_size,
        },
    )


def record_quota_usage(scope: str, used: int, limit: int) -> None:
    """Registra consumo de quota; nível WARNING acima de 95% do limite."""
    ratio = used / limit if limit else 0.0
    log = logger.warning if ratio >= 0.95 else logger.debug
    log(
        "metric_quota_usage",
        extra={
            "metric_type": "quota_usage",
            "scope": scope,
            "used": used,
            "limit": limit,
            "ratio": round(ratio, 4),
        },
    )
