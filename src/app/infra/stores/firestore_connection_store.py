"""Firestore store de conexões de agenda."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.domain.calendar_connection import CalendarConnection, utc_now
from app.infra.stores._firestore_common import from_document, run_firestore, to_document
from app.protocols.connection_store import ConnectionStoreProtocol

if TYPE_CHECKING:
    from datetime import datetime

    from google.cloud.firestore import Client as FirestoreClient

    from app.domain.calendar_event import WebhookChannel


class FirestoreConnectionStore(ConnectionStoreProtocol):
    """Uma coleção com um documento por conexão (doc id = connection.id)."""

    def __init__(self, firestore_client: FirestoreClient, collection_name: str) -> None:
        self._db = firestore_client
        self._collection = collection_name

    def _ref(self, connection_id: str) -> Any:
        return self._db.collection(self._collection).document(connection_id)

    async def get(self, connection_id: str) -> CalendarConnection | None:
        return await run_firestore("connection_get", self._get_sync, connection_id)

    def _get_sync(self, connection_id: str) -> CalendarConnection | None:
        doc = self._ref(connection_id).get()
        return from_document(CalendarConnection, doc.to_dict()) if doc.exists else None

    async def get_active_for_owner(self, owner_id: str) -> CalendarConnection | None:
        found = await run_firestore(
            "connection_get_active_for_owner",
            self._query_sync,
            [FieldFilter("owner_id", "==", owner_id), FieldFilter("is_active", "==", True)],
            1,
        )
        return found[0] if found else None

    async def find_by_channel(self, channel_id: str) -> CalendarConnection | None:
        found = await run_firestore(
            "connection_find_by_channel",
            self._query_sync,
            [FieldFilter("webhook_channel_id", "==", channel_id)],
            1,
        )
        return found[0] if found else None

    async def list_active(self) -> list[CalendarConnection]:
        return await run_firestore(
            "connection_list_active",
            self._query_sync,
            [FieldFilter("is_active", "==", True)],
            None,
        )

    async def list_expiring_webhooks(self, before: datetime) -> list[CalendarConnection]:
        def query() -> list[CalendarConnection]:
            stream = (
                self._db.collection(self._collection)
                .where(filter=FieldFilter("is_active", "==", True))
                .where(filter=FieldFilter("webhook_expiration", "<=", before))
                .order_by("webhook_expiration")
                .stream()
            )
            return [c for doc in stream if (c := from_document(CalendarConnection, doc.to_dict()))]

        return await run_firestore("connection_list_expiring", query)

    def _query_sync(self, filters: list[FieldFilter], limit: int | None) -> list[CalendarConnection]:
        query = self._db.collection(self._collection)
        for field_filter in filters:
            query = query.where(filter=field_filter)
        if limit is not None:
            query = query.limit(limit)
        return [
            c for doc in query.stream() if (c := from_document(CalendarConnection, doc.to_dict()))
        ]

    async def save(self, connection: CalendarConnection) -> None:
        await run_firestore("connection_save", self._save_sync, connection)

    def _save_sync(self, connection: CalendarConnection) -> None:
        transaction = self._db.transaction()
        ref = self._ref(connection.id)
        others_query = (
            self._db.collection(self._collection)
            .where(filter=FieldFilter("owner_id", "==", connection.owner_id))
            .where(filter=FieldFilter("is_active", "==", True))
        )

        @firestore.transactional
        def _save(txn: Any) -> None:
            if connection.is_active:
                for doc in txn.get(others_query):
                    if doc.id != connection.id:
                        txn.update(
                            doc.reference,
                            {
                                "is_active": False,
                                "deactivated_reason": "superseded",
                                "updated_at": utc_now(),
                            },
                        )
            txn.set(ref, to_document(connection))

        _save(transaction)

    async def compare_and_set_tokens(
        self,
        connection_id: str,
        *,
        expected_version: int,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        token_expiry: datetime,
    ) -> bool:
        def cas() -> bool:
            transaction = self._db.transaction()
            ref = self._ref(connection_id)

            @firestore.transactional
            def _cas(txn: Any) -> bool:
                snapshot = ref.get(transaction=txn)
                if not snapshot.exists:
                    return False
                if (snapshot.get("token_version") or 0) != expected_version:
                    return False
                txn.update(
                    ref,
                    {
                        "access_token_encrypted": access_token_encrypted,
                        "refresh_token_encrypted": refresh_token_encrypted,
                        "token_expiry": token_expiry,
                        "token_version": expected_version + 1,
                        "updated_at": utc_now(),
                    },
                )
                return True

            return _cas(transaction)

        return await run_firestore("connection_compare_and_set_tokens", cas)

    async def update_webhook(self, connection_id: str, channel: WebhookChannel | None) -> None:
        await self._update(
            "connection_update_webhook",
            connection_id,
            {
                "webhook_channel_id": channel.channel_id if channel else None,
                "webhook_resource_id": channel.resource_id if channel else None,
                "webhook_expiration": channel.expiration if channel else None,
            },
        )

    async def mark_webhook_stopped(self, connection_id: str) -> None:
        await self._update(
            "connection_mark_webhook_stopped",
            connection_id,
            {"webhook_channel_id": None, "webhook_resource_id": None},
        )

    async def update_sync_state(
        self,
        connection_id: str,
        *,
        last_sync_at: datetime,
        sync_token: str | None,
    ) -> None:
        await self._update(
            "connection_update_sync_state",
            connection_id,
            {"last_sync_at": last_sync_at, "sync_token": sync_token},
        )

    async def record_sync_result(
        self,
        connection_id: str,
        *,
        success: bool,
        pause_threshold: int,
    ) -> CalendarConnection | None:
        def record() -> CalendarConnection | None:
            transaction = self._db.transaction()
            ref = self._ref(connection_id)

            @firestore.transactional
            def _record(txn: Any) -> CalendarConnection | None:
                snapshot = ref.get(transaction=txn)
                current = from_document(CalendarConnection, snapshot.to_dict())
                if current is None:
                    return None
                if success:
                    changes: dict[str, Any] = {"consecutive_failures": 0}
                else:
                    failures = current.consecutive_failures + 1
                    changes = {
                        "consecutive_failures": failures,
                        "auto_sync_paused": current.auto_sync_paused or failures >= pause_threshold,
                    }
                changes["updated_at"] = utc_now()
                txn.update(ref, changes)
                return current.model_copy(update=changes)

            return _record(transaction)

        return await run_firestore("connection_record_sync_result", record)

    async def resume(self, connection_id: str) -> None:
        await self._update(
            "connection_resume",
            connection_id,
            {"auto_sync_paused": False, "consecutive_failures": 0},
        )

    async def deactivate(self, connection_id: str, reason: str) -> None:
        await self._update(
            "connection_deactivate",
            connection_id,
            {"is_active": False, "deactivated_reason": reason},
        )

    async def _update(self, action: str, connection_id: str, changes: dict[str, Any]) -> None:
        payload = {**changes, "updated_at": utc_now()}
        await run_firestore(action, self._ref(connection_id).update, payload)
