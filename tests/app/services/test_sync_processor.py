"""Testes do SyncProcessor (local-wins) sobre stores em memória e Google fake."""

from __future__ import annotations

import asyncio

import pytest

from app.services.error_classifier import USER_MESSAGES
from app.services.sync_processor import EXTERNAL_ONLY_REASON
from tests.fakes.sync_harness import SyncHarness, create_harness
from utils.errors import ProviderHttpError


def _unavailable() -> ProviderHttpError:
    return ProviderHttpError(503, "Backend Error", reason="backendError")


async def _synced_harness() -> tuple[SyncHarness, str]:
    harness = create_harness()
    await harness.add_connection()
    harness.add_appointment()
    outcome = await harness.processor.reconcile_appointment("appt-1")
    assert outcome.action == "create"
    assert outcome.external_event_id is not None
    return harness, outcome.external_event_id


class TestPush:
    @pytest.mark.asyncio
    async def test_creates_event_and_mapping(self) -> None:
        """Agendamento novo gera evento, mapeamento e log de create."""
        harness = create_harness()
        await harness.add_connection()
        harness.add_appointment()

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "create"
        mapping = await harness.mappings.find("appt-1")
        assert mapping is not None
        assert mapping.external_event_id == outcome.external_event_id
        event = harness.provider.events[mapping.external_event_id]
        assert event.summary == "Consulta inicial"
        assert event.appointment_id == "appt-1"
        [entry] = harness.logs("create")
        assert entry.status == "success"
        assert entry.connection_id == "conn-1"
        assert harness.provider.tokens_seen == ["access-conn-1"]

    @pytest.mark.asyncio
    async def test_second_push_without_changes_writes_nothing(self) -> None:
        """Reprocessar sem alterações não chama o Google nem grava log."""
        harness, _ = await _synced_harness()

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "unchanged"
        assert harness.provider.calls_to("insert_event") == 1
        assert harness.provider.calls_to("update_event") == 0
        assert len(harness.logs()) == 1

    @pytest.mark.asyncio
    async def test_local_edit_updates_event(self) -> None:
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        appointment = await harness.touch_appointment("appt-1", title="Retorno")

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "update"
        assert outcome.conflict is False
        assert harness.provider.events[event_id].summary == "Retorno"
        mapping = await harness.mappings.find("appt-1")
        assert mapping is not None
        assert mapping.last_synced_at >= appointment.updated_at
        assert mapping.last_synced_at >= harness.provider.events[event_id].updated

    @pytest.mark.asyncio
    async def test_criteria_skip_unless_forced(self) -> None:
        """Status fora dos critérios é pulado; force ignora os critérios."""
        harness = create_harness()
        await harness.add_connection()
        harness.add_appointment(status="pending")

        skipped = await harness.processor.reconcile_appointment("appt-1")
        forced = await harness.processor.reconcile_appointment("appt-1", force=True)

        assert skipped.action == "skipped"
        assert "pending" in (skipped.reason or "")
        assert forced.action == "create"
        assert harness.provider.events[forced.external_event_id].status == "tentative"

    @pytest.mark.asyncio
    async def test_no_active_connection_is_skipped(self) -> None:
        harness = create_harness()
        harness.add_appointment()

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "skipped"
        assert outcome.reason == "no_active_connection"
        assert harness.provider.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_pushes_create_a_single_event(self) -> None:
        """O lock por agendamento serializa: só um evento é criado."""
        harness = create_harness()
        await harness.add_connection()
        harness.add_appointment()

        outcomes = await asyncio.gather(
            harness.processor.reconcile_appointment("appt-1"),
            harness.processor.reconcile_appointment("appt-1"),
        )

        assert sorted(o.action for o in outcomes) == ["create", "unchanged"]
        assert harness.provider.calls_to("insert_event") == 1
        assert len(harness.provider.events) == 1

    @pytest.mark.asyncio
    async def test_stale_mapping_from_previous_connection_is_replaced(self) -> None:
        harness = create_harness()
        await harness.add_connection("conn-old")
        harness.add_appointment()
        await harness.processor.reconcile_appointment("appt-1")
        # Nova conexão do mesmo operador desativa a anterior.
        await harness.add_connection("conn-new")

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "create"
        mapping = await harness.mappings.find("appt-1")
        assert mapping is not None
        assert mapping.connection_id == "conn-new"
        assert await harness.mappings.count_for_connection("conn-old") == 0


class TestConflicts:
    @pytest.mark.asyncio
    async def test_both_sides_changed_local_wins_with_audit_details(self) -> None:
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        harness.provider.edit_externally(event_id, summary="Editado no Google")
        harness.clock.advance(minutes=1)
        await harness.touch_appointment("appt-1", title="Retorno")

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "update"
        assert outcome.conflict is True
        assert harness.provider.events[event_id].summary == "Retorno"
        [entry] = harness.logs("update")
        assert entry.details["conflict"] is True
        assert entry.details["resolution"] == "local_wins"
        assert entry.details["calendar_before"]["summary"] == "Editado no Google"
        assert entry.details["appointment_before"]["title"] == "Retorno"

    @pytest.mark.asyncio
    async def test_external_only_edit_is_skipped_and_not_imported(self) -> None:
        """Edição feita só no Google não volta para o agendamento nem é sobrescrita."""
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        harness.provider.edit_externally(event_id, summary="Editado no Google")

        result = await harness.processor.process_notification("conn-1")

        assert result.status == "success"
        [outcome] = result.outcomes
        assert outcome.action == "skipped"
        assert outcome.reason == EXTERNAL_ONLY_REASON
        assert harness.provider.events[event_id].summary == "Editado no Google"
        appointment = await harness.appointments.get("appt-1")
        assert appointment is not None
        assert appointment.title == "Consulta inicial"
        [skipped] = harness.logs("skipped")
        assert skipped.status == "success"
        [imported] = harness.logs("import")
        assert imported.details["events"] == 1

    @pytest.mark.asyncio
    async def test_force_pushes_local_over_external_edit(self) -> None:
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        harness.provider.edit_externally(event_id, summary="Editado no Google")

        outcome = await harness.processor.reconcile_appointment("appt-1", force=True)

        assert outcome.action == "update"
        assert harness.provider.events[event_id].summary == "Consulta inicial"

    @pytest.mark.asyncio
    async def test_notification_for_own_write_is_unchanged(self) -> None:
        """O eco da nossa própria escrita não gera nova escrita."""
        harness, _ = await _synced_harness()

        first = await harness.processor.process_notification("conn-1")
        second = await harness.processor.process_notification("conn-1")

        assert [o.action for o in first.outcomes] == ["unchanged"]
        assert second.events_seen == 0
        assert harness.provider.calls_to("update_event") == 0


class TestRecreateAndDelete:
    @pytest.mark.asyncio
    async def test_event_deleted_externally_is_recreated(self) -> None:
        harness, event_id = await _synced_harness()
        harness.provider.remove_externally(event_id)

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "recreated"
        assert outcome.reason == "external_missing"
        assert outcome.external_event_id != event_id
        mapping = await harness.mappings.find("appt-1")
        assert mapping is not None
        assert mapping.external_event_id == outcome.external_event_id
        assert outcome.external_event_id in harness.provider.events
        [entry] = harness.logs("recreated")
        assert entry.details == {"old_event_id": event_id, "reason": "external_missing"}

    @pytest.mark.asyncio
    async def test_event_cancelled_externally_is_recreated_from_webhook(self) -> None:
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        harness.provider.cancel_externally(event_id)

        result = await harness.processor.process_notification("conn-1")

        [outcome] = result.outcomes
        assert outcome.action == "recreated"
        assert outcome.reason == "external_cancelled"
        assert harness.provider.events[outcome.external_event_id].status == "confirmed"

    @pytest.mark.asyncio
    async def test_cancelled_appointment_deletes_event_and_mapping(self) -> None:
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        await harness.touch_appointment("appt-1", status="cancelled")

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "delete"
        assert event_id not in harness.provider.events
        assert await harness.mappings.find("appt-1") is None
        [entry] = harness.logs("delete")
        assert entry.details["external_existed"] is True

    @pytest.mark.asyncio
    async def test_delete_tolerates_event_already_gone(self) -> None:
        harness, event_id = await _synced_harness()
        harness.provider.remove_externally(event_id)
        harness.appointments.remove("appt-1")

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "delete"
        [entry] = harness.logs("delete")
        assert entry.details["external_existed"] is False

    @pytest.mark.asyncio
    async def test_resync_recreates_event(self) -> None:
        harness, event_id = await _synced_harness()

        outcome = await harness.processor.resync_appointment("appt-1")

        assert outcome.action == "recreated"
        assert outcome.reason == "manual_resync"
        assert event_id not in harness.provider.events
        assert outcome.external_event_id in harness.provider.events


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failure_is_enqueued_and_converges(self) -> None:
        harness = create_harness(max_attempts=3)
        await harness.add_connection()
        harness.add_appointment()
        harness.provider.fail_next("insert_event", _unavailable(), _unavailable(), _unavailable())

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "failed"
        assert outcome.retryable is True
        assert outcome.enqueued is True
        assert outcome.error_message == USER_MESSAGES["PROVIDER_UNAVAILABLE"]
        assert harness.backoff_sleep.delays == [1.0, 2.0]
        [failed] = harness.logs("create")
        assert failed.error_code == "PROVIDER_UNAVAILABLE"
        assert (await harness.retry_queue.stats("conn-1")).pending == 1

        harness.clock.advance(seconds=61)
        summary = await harness.retry_queue.drain(harness.processor.retry)

        assert summary.succeeded == 1
        assert await harness.mappings.find("appt-1") is not None
        assert (await harness.retry_queue.stats("conn-1")).pending == 0
        connection = await harness.connections.get("conn-1")
        assert connection is not None
        assert connection.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_enqueued(self) -> None:
        harness = create_harness()
        await harness.add_connection()
        harness.add_appointment()
        harness.provider.fail_next("insert_event", ProviderHttpError(400, "Bad Request"))

        outcome = await harness.processor.reconcile_appointment("appt-1")

        assert outcome.action == "failed"
        assert outcome.error_code == "INVALID_REQUEST"
        assert outcome.enqueued is False
        assert (await harness.retry_queue.stats("conn-1")).pending == 0

    @pytest.mark.asyncio
    async def test_consecutive_failures_pause_auto_sync(self) -> None:
        harness = create_harness(max_attempts=1, pause_threshold=2)
        await harness.add_connection()
        harness.add_appointment()
        harness.provider.fail_next("insert_event", _unavailable(), _unavailable())

        await harness.processor.reconcile_appointment("appt-1")
        await harness.processor.reconcile_appointment("appt-1")
        paused = await harness.processor.reconcile_appointment("appt-1")
        forced = await harness.processor.reconcile_appointment("appt-1", force=True)

        assert paused.action == "skipped"
        assert paused.reason == "auto_sync_paused"
        assert forced.action == "create"

    @pytest.mark.asyncio
    async def test_deleted_calendar_deactivates_connection(self) -> None:
        harness = create_harness()
        await harness.add_connection()
        harness.provider.fail_next("list_events", ProviderHttpError(404, "Not Found"))

        result = await harness.processor.process_notification("conn-1")

        assert result.status == "failed"
        assert result.reason == "CALENDAR_DELETED"
        connection = await harness.connections.get("conn-1")
        assert connection is not None
        assert connection.is_active is False
        assert connection.deactivated_reason == "calendar_deleted"
        [entry] = harness.logs("deactivate")
        assert entry.error_code == "CALENDAR_DELETED"


class TestNotifications:
    @pytest.mark.asyncio
    async def test_expired_sync_token_falls_back_to_window(self) -> None:
        harness = create_harness()
        await harness.add_connection(sync_token="stale")
        harness.provider.expired_sync_tokens.add("stale")

        result = await harness.processor.process_notification("conn-1")

        assert result.status == "success"
        assert harness.provider.calls_to("list_events") == 2
        connection = await harness.connections.get("conn-1")
        assert connection is not None
        assert connection.sync_token == "sync-1"
        assert connection.last_sync_at == harness.clock()

    @pytest.mark.asyncio
    async def test_unmapped_event_is_ignored(self) -> None:
        """Eventos criados direto no Google não são importados."""
        harness = create_harness()
        await harness.add_connection()
        harness.provider.add_external_event()

        result = await harness.processor.process_notification("conn-1")

        [outcome] = result.outcomes
        assert outcome.action == "unchanged"
        assert outcome.reason == "unmapped_event"
        assert await harness.mappings.count_for_connection("conn-1") == 0

    @pytest.mark.asyncio
    async def test_inactive_connection_is_skipped(self) -> None:
        harness = create_harness()
        await harness.add_connection(is_active=False)

        result = await harness.processor.process_notification("conn-1")

        assert result.status == "skipped"
        assert result.reason == "connection_inactive"
        assert harness.provider.calls == []


class TestRetryExecutor:
    @pytest.mark.asyncio
    async def test_paused_connection_defers_item_without_dropping_it(self) -> None:
        """Item enfileirado antes da pausa continua pendente e converge após resume."""
        harness = create_harness(max_attempts=1)
        await harness.add_connection()
        harness.add_appointment()
        harness.provider.fail_next("insert_event", _unavailable())
        first = await harness.processor.reconcile_appointment("appt-1")
        assert first.enqueued is True
        await harness.connections.record_sync_result("conn-1", success=False, pause_threshold=1)

        harness.clock.advance(seconds=61)
        summary = await harness.retry_queue.drain(harness.processor.retry)

        assert summary.succeeded == 0
        assert summary.deferred == 1
        stats = await harness.retry_queue.stats("conn-1")
        assert stats.pending == 1
        assert stats.failed_permanently == 0
        assert await harness.mappings.find("appt-1") is None

        await harness.connections.resume("conn-1")
        harness.clock.advance(seconds=61)
        summary = await harness.retry_queue.drain(harness.processor.retry)

        assert summary.succeeded == 1
        assert await harness.mappings.find("appt-1") is not None
        assert (await harness.retry_queue.stats("conn-1")).pending == 0

    @pytest.mark.asyncio
    async def test_missing_connection_fails_item_permanently(self) -> None:
        harness = create_harness(max_attempts=1)
        await harness.add_connection()
        harness.add_appointment()
        harness.provider.fail_next("insert_event", _unavailable())
        await harness.processor.reconcile_appointment("appt-1")
        await harness.connections.deactivate("conn-1", "credential_revoked")

        harness.clock.advance(seconds=61)
        summary = await harness.retry_queue.drain(harness.processor.retry)

        assert summary.failed_permanently == 1
        [failed] = await harness.retry_queue.failed_items("conn-1")
        assert failed.last_error_code == "NO_ACTIVE_CONNECTION"


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_same_change_processed_twice_converges(self) -> None:
        """Reentrega da mesma alteração (sem dedupe) não duplica evento nem mapeamento."""
        harness, event_id = await _synced_harness()
        harness.clock.advance(minutes=5)
        harness.provider.cancel_externally(event_id)

        first = await harness.processor.process_notification("conn-1")
        harness.clock.advance(minutes=1)
        harness.provider.redeliver_changes(event_id)
        second = await harness.processor.process_notification("conn-1")

        assert [o.action for o in first.outcomes] == ["recreated"]
        assert all(o.action == "unchanged" for o in second.outcomes)
        assert len(harness.provider.live_events()) == 1
        assert harness.provider.calls_to("insert_event") == 2
        assert await harness.mappings.count_for_connection("conn-1") == 1
        mapping = await harness.mappings.find("appt-1")
        assert mapping is not None
        assert mapping.external_event_id == harness.provider.live_events()[0].event_id
