"""Observabilidade — contexto de rastreamento e métricas via logs.

Uso:
    from app.observability import get_correlation_id, set_connection_id
    from app.observability import record_latency, record_sync_outcome
"""

from app.observability.correlation import (
    generate_correlation_id,
    get_connection_id,
    get_correlation_id,
    reset_connection_id,
    reset_correlation_id,
    set_connection_id,
    set_correlation_id,
)
from app.observability.metrics import (
    record_latency,
    record_provider_retry,
    record_queue_rejection,
    record_quota_usage,
    record_sync_outcome,
)

__all__ = [
    "generate_correlation_id",
    "get_connection_id",
    "get_correlation_id",
    "record_latency",
    "record_provider_retry",
    "record_queue_rejection",
    "record_quota_usage",
    "record_sync_outcome",
    "reset_connection_id",
    "reset_correlation_id",
    "set_connection_id",
    "set_correlation_id",
]
