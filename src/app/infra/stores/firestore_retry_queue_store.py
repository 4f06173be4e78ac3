"""Firestore store da fila de retry (um documento por item)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.sync_records import RetryQueueItem
from app.infra.stores._firestore_common import from_document, run_firestore, to_document
from app.protocols.retry_queue_store import RetryQueueStoreProtocol

if TYPE_CHECKING:
    from datetime import datetime

    from google.cloud.firestore import Client as FirestoreClient

    from app.domain.sync_records import RetryState


class FirestoreRetryQueueStore(RetryQueueStoreProtocol):
    def __init__(self, firestore_client: FirestoreClient, collection_name: str) -> None:
        self._db = firestore_client
        self._collection = collection_name

    def _ref(self, item_id: str) -> Any:
        return self._db.collection(self._collection).document(item_id)

    def _query(self, connection_id: str | None, state: RetryState) -> Any:
        query = self._db.collection(self._collection).where(
            filter=FieldFilter("state", "==", state)
        )
        if connection_id is not None:
            query = query.where(filter=FieldFilter("connection_id", "==", connection_id))
        return query

    @staticmethod
    def _items(query: Any) -> list[RetryQueueItem]:
        return [i for doc in query.stream() if (i := from_document(RetryQueueItem, doc.to_dict()))]

    async def add(self, item: RetryQueueItem) -> None:
        await run_firestore("retry_add", self._ref(item.id).set, to_document(item))

    async def get(self, item_id: str) -> RetryQueueItem | None:
        def get() -> RetryQueueItem | None:
            doc = self._ref(item_id).get()
            return from_document(RetryQueueItem, doc.to_dict()) if doc.exists else None

        return await run_firestore("retry_get", get)

    async def find_pending(
        self,
        connection_id: str,
        appointment_id: str | None,
    ) -> RetryQueueItem | None:
        query = self._query(connection_id, "pending").where(
            filter=FieldFilter("appointment_id", "==", appointment_id)
        )
        found = await run_firestore("retry_find_pending", self._items, query.limit(1))
        return found[0] if found else None

    async def list_due(self, now: datetime, *, limit: int) -> list[RetryQueueItem]:
        query = (
            self._query(None, "pending")
            .where(filter=FieldFilter("next_retry_at", "<=", now))
            .order_by("next_retry_at")
            .limit(limit)
        )
        return await run_firestore("retry_list_due", self._items, query)

    async def save(self, item: RetryQueueItem) -> None:
        await run_firestore("retry_save", self._ref(item.id).set, to_document(item))

    async def delete(self, item_id: str) -> None:
        await run_firestore("retry_delete", self._ref(item_id).delete)

    async def count(self, connection_id: str | None = None, *, state: RetryState) -> int:
        def count() -> int:
            result = self._query(connection_id, state).count().get()
            return int(result[0][0].value)

        return await run_firestore("retry_count", count)

    async def next_due_at(self, connection_id: str | None = None) -> datetime | None:
        query = self._query(connection_id, "pending").order_by("next_retry_at").limit(1)
        found = await run_firestore("retry_next_due_at", self._items, query)
        return found[0].next_retry_at if found else None

    async def list_failed(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[RetryQueueItem]:
        query = (
            self._query(connection_id, "failed_permanently")
            .order_by("updated_at", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return await run_firestore("retry_list_failed", self._items, query)
