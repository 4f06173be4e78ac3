"""Testes dos stores Firestore com cliente mockado."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gexc

from app.domain.appointment import Appointment
from app.domain.sync_records import SyncLogEntry
from app.infra.stores.firestore_appointment_store import FirestoreAppointmentStore
from app.infra.stores.firestore_event_mapping_store import FirestoreEventMappingStore
from app.infra.stores.firestore_sync_log_store import FirestoreSyncLogStore
from utils.errors import FirestoreUnavailableError

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _doc(data: dict[str, object]) -> MagicMock:
    doc = MagicMock()
    doc.to_dict.return_value = data
    return doc


class TestFirestoreEventMappingStore:
    @pytest.mark.asyncio
    async def test_find_parses_first_document(self) -> None:
        client = MagicMock()
        query = client.collection.return_value.where.return_value.limit.return_value
        query.stream.return_value = [
            _doc(
                {
                    "id": "map-1",
                    "appointment_id": "appt-1",
                    "connection_id": "conn-1",
                    "external_event_id": "evt-1",
                    "last_synced_at": NOW,
                }
            )
        ]
        store = FirestoreEventMappingStore(client, "calendar_event_mappings")

        mapping = await store.find("appt-1")

        assert mapping is not None
        assert mapping.external_event_id == "evt-1"
        client.collection.assert_called_with("calendar_event_mappings")

    @pytest.mark.asyncio
    async def test_find_returns_none_when_empty(self) -> None:
        client = MagicMock()
        client.collection.return_value.where.return_value.limit.return_value.stream.return_value = []
        store = FirestoreEventMappingStore(client, "calendar_event_mappings")

        assert await store.find("appt-x") is None

    @pytest.mark.asyncio
    async def test_transient_error_becomes_firestore_unavailable(self) -> None:
        client = MagicMock()
        client.collection.return_value.document.return_value.delete.side_effect = (
            gexc.ServiceUnavailable("down")
        )
        store = FirestoreEventMappingStore(client, "calendar_event_mappings")

        with pytest.raises(FirestoreUnavailableError):
            await store.delete("map-1")


class TestFirestoreSyncLogStore:
    @pytest.mark.asyncio
    async def test_append_creates_document(self) -> None:
        client = MagicMock()
        store = FirestoreSyncLogStore(client, "calendar_sync_logs")
        entry = SyncLogEntry(connection_id="conn-1", operation="create", sync_type="push", status="success")

        await store.append(entry)

        client.collection.return_value.document.assert_called_once_with(entry.id)
        created = client.collection.return_value.document.return_value.create.call_args[0][0]
        assert created["operation"] == "create"
        assert created["connection_id"] == "conn-1"

    @pytest.mark.asyncio
    async def test_count_uses_aggregation(self) -> None:
        client = MagicMock()
        query = client.collection.return_value.where.return_value
        query.where.return_value.count.return_value.get.return_value = [[SimpleNamespace(value=4)]]
        store = FirestoreSyncLogStore(client, "calendar_sync_logs")

        total = await store.count("conn-1", status="failed")

        assert total == 4


class TestFirestoreAppointmentStore:
    @pytest.mark.asyncio
    async def test_create_writes_document_keyed_by_id(self) -> None:
        client = MagicMock()
        store = FirestoreAppointmentStore(client, "appointments")
        appointment = Appointment(
            id="appt-9",
            owner_id="owner-1",
            title="Avaliação",
            start_at=NOW,
            end_at=NOW.replace(hour=13),
            status="pending",
            updated_at=NOW,
        )

        await store.create(appointment)

        client.collection.return_value.document.assert_called_once_with("appt-9")
        created = client.collection.return_value.document.return_value.create.call_args[0][0]
        assert "id" not in created
        assert created["status"] == "pending"
        assert created["owner_id"] == "owner-1"
