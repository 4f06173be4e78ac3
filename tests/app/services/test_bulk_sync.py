"""Testes do BulkSyncService (lotes, janela e contagem de resultados)."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from app.domain.appointment import Appointment
from app.services.bulk_sync import BulkSyncService
from app.services.sync_processor import SyncOutcome
from tests.fakes.fake_clock import RecordingSleep
from tests.fakes.sync_harness import SyncHarness, create_harness
from utils.errors import FirestoreUnavailableError, ProviderHttpError


def _service(harness: SyncHarness, sleep: RecordingSleep, batch_size: int = 2) -> BulkSyncService:
    return BulkSyncService(
        connection_store=harness.connections,
        appointment_store=harness.appointments,
        processor=harness.processor,
        batch_size=batch_size,
        batch_delay_seconds=1.0,
        clock=harness.clock,
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_pushes_window_in_batches() -> None:
    harness = create_harness()
    await harness.add_connection()
    for index in range(5):
        start = harness.clock() + timedelta(days=index + 1)
        harness.add_appointment(f"appt-{index}", start_at=start, end_at=start + timedelta(hours=1))
    sleep = RecordingSleep()

    result = await _service(harness, sleep).run(connection_id="conn-1")

    assert result.total == 5
    assert result.successful == 5
    assert result.failed == 0
    assert sleep.delays == [1.0, 1.0]
    assert harness.provider.calls_to("insert_event") == 5
    assert all(entry.sync_type == "bulk" for entry in harness.logs("create"))


@pytest.mark.asyncio
async def test_default_window_excludes_far_future() -> None:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment("appt-near")
    far = harness.clock() + timedelta(days=45)
    harness.add_appointment("appt-far", start_at=far, end_at=far + timedelta(hours=1))

    result = await _service(harness, RecordingSleep()).run()

    assert result.total == 1
    assert await harness.mappings.find("appt-far") is None


@pytest.mark.asyncio
async def test_counts_skipped_and_failed() -> None:
    harness = create_harness(max_attempts=1)
    await harness.add_connection()
    harness.add_appointment("appt-a", status="pending")
    later = harness.clock() + timedelta(days=2)
    harness.add_appointment("appt-b", start_at=later, end_at=later + timedelta(hours=1))
    harness.provider.fail_next("insert_event", ProviderHttpError(503, "Backend Error"))

    result = await _service(harness, RecordingSleep(), batch_size=10).run()

    assert result.total == 2
    assert result.skipped == 1
    assert result.failed == 1
    assert result.errors[0]["appointment_id"] == "appt-b"


@pytest.mark.asyncio
async def test_force_pushes_appointments_outside_criteria() -> None:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment(status="pending")

    result = await _service(harness, RecordingSleep()).run(force=True)

    assert result.successful == 1


@pytest.mark.asyncio
async def test_inactive_connection_yields_empty_result() -> None:
    harness = create_harness()
    await harness.add_connection(is_active=False)
    harness.add_appointment()

    result = await _service(harness, RecordingSleep()).run(connection_id="conn-1")

    assert result.total == 0



@pytest.mark.asyncio
async def test_store_error_on_one_appointment_does_not_abort_run(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment("appt-1")
    later = harness.clock() + timedelta(days=2)
    harness.add_appointment("appt-2", start_at=later, end_at=later + timedelta(hours=1))
    original_get = harness.appointments.get

    async def flaky_get(appointment_id: str) -> Appointment | None:
        if appointment_id == "appt-2":
            raise FirestoreUnavailableError("down")
        return await original_get(appointment_id)

    monkeypatch.setattr(harness.appointments, "get", flaky_get)

    result = await _service(harness, RecordingSleep(), batch_size=10).run(connection_id="conn-1")

    assert result.total == 2
    assert result.successful == 1
    assert result.failed == 1
    assert result.errors[0]["appointment_id"] == "appt-2"
    assert result.errors[0]["error_code"] == "STORAGE_UNAVAILABLE"
    assert await harness.mappings.find("appt-1") is not None


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_item_error(monkeypatch: pytest.MonkeyPatch) -> None:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment("appt-1")
    later = harness.clock() + timedelta(days=2)
    harness.add_appointment("appt-2", start_at=later, end_at=later + timedelta(hours=1))
    original = harness.processor.reconcile_appointment

    async def crash_on_second(appointment_id: str, **kwargs: Any) -> SyncOutcome:
        if appointment_id == "appt-2":
            raise RuntimeError("bug")
        return await original(appointment_id, **kwargs)

    monkeypatch.setattr(harness.processor, "reconcile_appointment", crash_on_second)

    result = await _service(harness, RecordingSleep(), batch_size=10).run(connection_id="conn-1")

    assert result.total == 2
    assert result.successful == 1
    assert result.failed == 1
    assert result.errors == [
        {
            "error": result.errors[0]["error"],
            "error_code": "UNKNOWN",
            "appointment_id": "appt-2",
            "connection_id": "conn-1",
        }
    ]


@pytest.mark.asyncio
async def test_listing_failure_is_reported_per_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment()

    async def failing_list(*_args: Any, **_kwargs: Any) -> list[Appointment]:
        raise FirestoreUnavailableError("down")

    monkeypatch.setattr(harness.appointments, "list_for_owner", failing_list)

    result = await _service(harness, RecordingSleep()).run(connection_id="conn-1")

    assert result.total == 0
    assert result.errors[0]["connection_id"] == "conn-1"
    assert result.errors[0]["error_code"] == "STORAGE_UNAVAILABLE"
