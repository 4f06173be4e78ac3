"""Firestore Sync Log Store — auditoria append-only da sincronização.

Documentos são criados com `create()` e nunca atualizados.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.sync_records import SyncLogEntry
from app.infra.stores._firestore_common import from_document, run_firestore, to_document
from app.protocols.sync_log_store import SyncLogStoreProtocol

if TYPE_CHECKING:
    from datetime import datetime

    from google.cloud.firestore import Client as FirestoreClient

    from app.domain.sync_records import SyncStatus


class FirestoreSyncLogStore(SyncLogStoreProtocol):
    def __init__(self, firestore_client: FirestoreClient, collection_name: str) -> None:
        self._db = firestore_client
        self._collection = collection_name

    async def append(self, entry: SyncLogEntry) -> None:
        ref = self._db.collection(self._collection).document(entry.id)
        await run_firestore("sync_log_append", ref.create, to_document(entry))

    async def list_recent(
        self,
        connection_id: str | None = None,
        *,
        limit: int = 50,
    ) -> list[SyncLogEntry]:
        def query() -> list[SyncLogEntry]:
            base = self._db.collection(self._collection)
            if connection_id is not None:
                base = base.where(filter=FieldFilter("connection_id", "==", connection_id))
            stream = base.order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)
            return [e for doc in stream.stream() if (e := from_document(SyncLogEntry, doc.to_dict()))]

        return await run_firestore("sync_log_list_recent", query)

    async def count(
        self,
        connection_id: str,
        *,
        since: datetime | None = None,
        status: SyncStatus | None = None,
    ) -> int:
        def count() -> int:
            query = self._db.collection(self._collection).where(
                filter=FieldFilter("connection_id", "==", connection_id)
            )
            if since is not None:
                query = query.where(filter=FieldFilter("created_at", ">=", since))
            if status is not None:
                query = query.where(filter=FieldFilter("status", "==", status))
            result = query.count().get()
            return int(result[0][0].value)

        return await run_firestore("sync_log_count", count)
