"""Testes do WebhookIngress (validação do canal e despacho ao pool)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.domain.calendar_event import WebhookChannel, WebhookNotification
from app.infra.stores.memory_stores import MemoryDedupeStore
from app.services.webhook_ingress import WebhookIngress
from app.services.worker_pool import SyncWorkerPool
from tests.fakes.sync_harness import SyncHarness, create_harness
from utils.errors import RedisConnectionError


async def _setup(
    *, channel_token: str | None = None, dedupe: object | None = None, max_queue: int = 10
) -> tuple[SyncHarness, SyncWorkerPool, WebhookIngress]:
    harness = create_harness()
    await harness.add_connection()
    await harness.connections.update_webhook(
        "conn-1",
        WebhookChannel(
            channel_id="chan-1",
            resource_id="res-1",
            expiration=harness.clock() + timedelta(days=7),
        ),
    )
    pool = SyncWorkerPool(size=1, max_queue=max_queue)
    ingress = WebhookIngress(
        connection_store=harness.connections,
        processor=harness.processor,
        pool=pool,
        sync_logger=harness.sync_logger,
        dedupe=dedupe,  # type: ignore[arg-type]
        channel_token=channel_token,
    )
    return harness, pool, ingress


def _notification(**overrides: object) -> WebhookNotification:
    values: dict[str, object] = {
        "channel_id": "chan-1",
        "resource_state": "exists",
        "resource_id": "res-1",
        "message_number": 7,
        **overrides,
    }
    return WebhookNotification(**values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_unknown_channel_is_ignored_without_sync_log() -> None:
    harness, pool, ingress = await _setup()

    result = await ingress.handle(_notification(channel_id="chan-desconhecido"))

    assert result.status == "ignored"
    assert result.reason == "unknown_channel"
    assert harness.logs() == []
    assert pool.queue_size == 0


@pytest.mark.asyncio
async def test_resource_mismatch_is_ignored() -> None:
    _, pool, ingress = await _setup()

    result = await ingress.handle(_notification(resource_id="res-outro"))

    assert result.reason == "resource_mismatch"
    assert pool.queue_size == 0


@pytest.mark.asyncio
async def test_wrong_channel_token_is_ignored() -> None:
    _, pool, ingress = await _setup(channel_token="segredo")

    wrong = await ingress.handle(_notification(channel_token="outro"))
    right = await ingress.handle(_notification(channel_token="segredo"))

    assert wrong.reason == "token_mismatch"
    assert right.status == "accepted"
    assert pool.queue_size == 1


@pytest.mark.asyncio
async def test_sync_handshake_does_not_enqueue() -> None:
    _, pool, ingress = await _setup()

    result = await ingress.handle(_notification(resource_state="sync", message_number=1))

    assert result.status == "handshake"
    assert result.connection_id == "conn-1"
    assert pool.queue_size == 0


@pytest.mark.asyncio
async def test_not_exists_deactivates_connection() -> None:
    harness, _, ingress = await _setup()

    result = await ingress.handle(_notification(resource_state="not_exists"))

    assert result.status == "deactivated"
    connection = await harness.connections.get("conn-1")
    assert connection is not None
    assert connection.is_active is False
    assert connection.has_webhook is False
    [entry] = harness.logs("deactivate")
    assert entry.error_code == "CALENDAR_DELETED"


@pytest.mark.asyncio
async def test_exists_notification_is_processed_by_pool() -> None:
    harness, pool, ingress = await _setup()
    harness.add_appointment()
    await harness.processor.reconcile_appointment("appt-1")

    result = await ingress.handle(_notification())
    pool.start()
    await pool.join()
    await pool.stop()

    assert result.status == "accepted"
    assert harness.provider.calls_to("list_events") == 1
    connection = await harness.connections.get("conn-1")
    assert connection is not None
    assert connection.sync_token == "sync-1"


@pytest.mark.asyncio
async def test_duplicate_message_number_is_dropped() -> None:
    _, pool, ingress = await _setup(dedupe=MemoryDedupeStore())

    first = await ingress.handle(_notification())
    second = await ingress.handle(_notification())

    assert first.status == "accepted"
    assert second.status == "duplicate"
    assert pool.queue_size == 1


@pytest.mark.asyncio
async def test_dedupe_outage_still_accepts() -> None:
    dedupe = AsyncMock()
    dedupe.seen = AsyncMock(side_effect=RedisConnectionError("down"))
    _, _, ingress = await _setup(dedupe=dedupe)

    result = await ingress.handle(_notification())

    assert result.status == "accepted"


@pytest.mark.asyncio
async def test_full_pool_rejects_notification() -> None:
    harness, _, ingress = await _setup(max_queue=1)
    await harness.add_connection("conn-2", owner_id="owner-2")
    await harness.connections.update_webhook(
        "conn-2",
        WebhookChannel(
            channel_id="chan-2",
            resource_id="res-2",
            expiration=harness.clock() + timedelta(days=7),
        ),
    )

    first = await ingress.handle(_notification())
    second = await ingress.handle(_notification(channel_id="chan-2", resource_id="res-2"))

    assert first.status == "accepted"
    assert second.status == "rejected"
    assert second.reason == "queue_full"
