"""Motor completo (build_calendar_engine) sobre stores em memória e fakes."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from app.bootstrap.dependencies import CalendarSyncEngine, build_calendar_engine
from app.bootstrap.dependencies_stores import SyncStores
from app.domain.calendar_connection import CalendarConnection, utc_now
from app.infra.stores.memory_stores import (
    MemoryAppointmentStore,
    MemoryConnectionStore,
    MemoryDedupeStore,
    MemoryEventMappingStore,
    MemoryRetryQueueStore,
    MemorySyncLogStore,
)
from config.settings import CalendarSyncSettings
from tests.fakes.fake_calendar_provider import FakeCalendarProvider
from tests.fakes.fake_clock import FakeClock
from tests.fakes.fake_credentials import FakeTokenRefresher, IdentityCipher

CRON_SECRET = "cron-secret"
ADMIN_TOKEN = "admin-token"


def create_test_engine(**overrides: Any) -> tuple[CalendarSyncEngine, FakeCalendarProvider]:
    values: dict[str, Any] = {
        "cron_secret": CRON_SECRET,
        "admin_token": ADMIN_TOKEN,
        "webhook_callback_url": "https://sync.example.com/webhook/google-calendar",
        "min_request_interval_ms": 0,
        "max_attempts": 1,
        "backoff_jitter_seconds": 0,
        "retry_spacing_ms": 0,
        "bulk_batch_delay_ms": 0,
        "renewal_spacing_ms": 0,
        **overrides,
    }
    clock = FakeClock(utc_now())
    provider = FakeCalendarProvider(clock)
    engine = build_calendar_engine(
        CalendarSyncSettings(**values),
        stores=SyncStores(
            connections=MemoryConnectionStore(),
            mappings=MemoryEventMappingStore(),
            sync_logs=MemorySyncLogStore(),
            retry_queue=MemoryRetryQueueStore(),
            appointments=MemoryAppointmentStore(),
        ),
        provider=provider,
        refresher=FakeTokenRefresher(clock),
        cipher=IdentityCipher(),
        dedupe=MemoryDedupeStore(),
    )
    return engine, provider


async def add_engine_connection(
    engine: CalendarSyncEngine,
    connection_id: str = "conn-1",
    owner_id: str = "owner-1",
    **overrides: Any,
) -> CalendarConnection:
    cipher = IdentityCipher()
    values: dict[str, Any] = {
        "id": connection_id,
        "owner_id": owner_id,
        "access_token_encrypted": cipher.encrypt(f"access-{connection_id}"),
        "refresh_token_encrypted": cipher.encrypt(f"refresh-{connection_id}"),
        "token_expiry": utc_now() + timedelta(days=30),
        **overrides,
    }
    connection = CalendarConnection(**values)
    await engine.stores.connections.save(connection)
    return connection
