"""Testes do SyncHealthService (estatísticas e problemas por conexão)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.domain.calendar_event import WebhookChannel
from app.services.sync_health import ISSUE_MESSAGES, SyncHealthService
from tests.fakes.sync_harness import SyncHarness, create_harness
from utils.errors import ProviderHttpError


def _health(harness: SyncHarness) -> SyncHealthService:
    return SyncHealthService(
        connection_store=harness.connections,
        sync_log_store=harness.sync_logs,
        retry_queue=harness.retry_queue,
        clock=harness.clock,
    )


async def _with_webhook(harness: SyncHarness, expires_in: timedelta) -> None:
    await harness.connections.update_webhook(
        "conn-1",
        WebhookChannel(
            channel_id="chan-1",
            resource_id="res-1",
            expiration=harness.clock() + expires_in,
        ),
    )


@pytest.mark.asyncio
async def test_unknown_connection_returns_none() -> None:
    harness = create_harness()

    assert await _health(harness).connection_health("conn-x") is None


@pytest.mark.asyncio
async def test_healthy_connection_reports_counts() -> None:
    harness = create_harness()
    await harness.add_connection()
    await _with_webhook(harness, timedelta(days=5))
    harness.add_appointment()
    await harness.processor.reconcile_appointment("appt-1")

    health = await _health(harness).connection_health("conn-1")

    assert health is not None
    assert health.status == "healthy"
    assert health.issues == []
    payload = health.to_dict()
    assert payload["stats"] == {
        "total": 1,
        "successful": 1,
        "failed": 0,
        "last_24h": 1,
        "failed_last_24h": 0,
    }
    assert payload["retry_queue"]["pending"] == 0


@pytest.mark.asyncio
async def test_failures_and_expiring_webhook_are_reported_as_messages() -> None:
    harness = create_harness(max_attempts=1)
    await harness.add_connection()
    await _with_webhook(harness, timedelta(hours=3))
    harness.add_appointment()
    harness.provider.fail_next("insert_event", ProviderHttpError(503, "Backend Error"))
    await harness.processor.reconcile_appointment("appt-1")

    health = await _health(harness).connection_health("conn-1")

    assert health is not None
    assert health.status == "warning"
    assert set(health.issues) == {"webhook_expiring", "recent_failures"}
    assert health.pending_retries == 1
    payload = health.to_dict()
    assert ISSUE_MESSAGES["webhook_expiring"] in payload["issues"]
    # Nenhum texto cru do provedor chega ao operador.
    assert all("Backend Error" not in message for message in payload["issues"])


@pytest.mark.asyncio
async def test_missing_webhook_and_inactive_connection() -> None:
    harness = create_harness()
    await harness.add_connection()
    await harness.add_connection("conn-2", owner_id="owner-2", is_active=False)
    service = _health(harness)

    active = await service.connection_health("conn-1")
    inactive = await service.connection_health("conn-2")
    listed = await service.all_active()

    assert active is not None and active.issues == ["webhook_missing"]
    assert inactive is not None and inactive.issues == ["connection_inactive"]
    assert [h.connection_id for h in listed] == ["conn-1"]
