"""Firestore store de mapeamentos agendamento <-> evento externo.

A unicidade (appointment_id) e (connection_id, external_event_id) é
garantida dentro de uma transação, já que o Firestore não tem índice único.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.sync_records import EventMapping
from app.infra.stores._firestore_common import from_document, run_firestore, to_document
from app.protocols.event_mapping_store import EventMappingStoreProtocol
from utils.errors import MappingInconsistentError

if TYPE_CHECKING:
    from datetime import datetime

    from google.cloud.firestore import Client as FirestoreClient

    from app.domain.sync_records import SyncDirection


class FirestoreEventMappingStore(EventMappingStoreProtocol):
    def __init__(self, firestore_client: FirestoreClient, collection_name: str) -> None:
        self._db = firestore_client
        self._collection = collection_name

    def _by_appointment(self, appointment_id: str) -> Any:
        return (
            self._db.collection(self._collection)
            .where(filter=FieldFilter("appointment_id", "==", appointment_id))
            .limit(1)
        )

    def _by_external(self, connection_id: str, external_event_id: str) -> Any:
        return (
            self._db.collection(self._collection)
            .where(filter=FieldFilter("connection_id", "==", connection_id))
            .where(filter=FieldFilter("external_event_id", "==", external_event_id))
            .limit(1)
        )

    @staticmethod
    def _first(docs: Any) -> EventMapping | None:
        for doc in docs:
            return from_document(EventMapping, doc.to_dict())
        return None

    async def find(self, appointment_id: str) -> EventMapping | None:
        return await run_firestore(
            "mapping_find",
            lambda: self._first(self._by_appointment(appointment_id).stream()),
        )

    async def find_by_external_id(
        self,
        connection_id: str,
        external_event_id: str,
    ) -> EventMapping | None:
        return await run_firestore(
            "mapping_find_by_external_id",
            lambda: self._first(self._by_external(connection_id, external_event_id).stream()),
        )

    async def create(self, mapping: EventMapping) -> EventMapping:
        return await run_firestore("mapping_create", self._create_sync, mapping)

    def _create_sync(self, mapping: EventMapping) -> EventMapping:
        transaction = self._db.transaction()
        ref = self._db.collection(self._collection).document(mapping.id)

        @firestore.transactional
        def _create(txn: Any) -> EventMapping:
            existing = self._first(txn.get(self._by_appointment(mapping.appointment_id)))
            if existing is not None:
                return existing
            taken = self._first(
                txn.get(self._by_external(mapping.connection_id, mapping.external_event_id))
            )
            if taken is not None:
                raise MappingInconsistentError(
                    "Evento externo já vinculado a outro agendamento",
                    details={
                        "external_event_id": mapping.external_event_id,
                        "existing_appointment_id": taken.appointment_id,
                        "requested_appointment_id": mapping.appointment_id,
                    },
                )
            txn.set(ref, to_document(mapping))
            return mapping

        return _create(transaction)

    async def update_last_synced(
        self,
        mapping_id: str,
        instant: datetime,
        direction: SyncDirection = "push",
    ) -> None:
        ref = self._db.collection(self._collection).document(mapping_id)
        await run_firestore(
            "mapping_update_last_synced",
            ref.update,
            {"last_synced_at": instant, "sync_direction": direction},
        )

    async def delete(self, mapping_id: str) -> None:
        ref = self._db.collection(self._collection).document(mapping_id)
        await run_firestore("mapping_delete", ref.delete)

    async def count_for_connection(self, connection_id: str) -> int:
        def count() -> int:
            query = self._db.collection(self._collection).where(
                filter=FieldFilter("connection_id", "==", connection_id)
            )
            result = query.count().get()
            return int(result[0][0].value)

        return await run_firestore("mapping_count", count)
