"""Factories de stores baseadas em configuração de ambiente."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.bootstrap.clients import create_async_redis_client, create_firestore_client
from app.infra.stores import (
    FirestoreAppointmentStore,
    FirestoreConnectionStore,
    FirestoreEventMappingStore,
    FirestoreRetryQueueStore,
    FirestoreSyncLogStore,
    MemoryAppointmentStore,
    MemoryConnectionStore,
    MemoryDedupeStore,
    MemoryEventMappingStore,
    MemoryQuotaCounter,
    MemoryRetryQueueStore,
    MemorySyncLogStore,
    RedisDedupeStore,
    RedisQuotaCounter,
)

if TYPE_CHECKING:
    from app.protocols.appointment_store import AppointmentStoreProtocol
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.dedupe import AsyncDedupeProtocol
    from app.protocols.event_mapping_store import EventMappingStoreProtocol
    from app.protocols.quota_counter import QuotaCounterProtocol
    from app.protocols.retry_queue_store import RetryQueueStoreProtocol
    from app.protocols.sync_log_store import SyncLogStoreProtocol
    from config.settings import BaseSettings, FirestoreSettings, StoreSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStores:
    """Repositórios do motor de sincronização (mesmo backend)."""

    connections: ConnectionStoreProtocol
    mappings: EventMappingStoreProtocol
    sync_logs: SyncLogStoreProtocol
    retry_queue: RetryQueueStoreProtocol
    appointments: AppointmentStoreProtocol


def create_sync_stores(
    stores: StoreSettings,
    firestore: FirestoreSettings,
    base: BaseSettings,
) -> SyncStores:
    """Cria os repositórios conforme SYNC_STORE_BACKEND."""
    backend = stores.sync_backend

    if backend == "firestore":
        client = create_firestore_client(firestore.project_id or base.gcp_project, firestore.database)
        result = SyncStores(
            connections=FirestoreConnectionStore(client, firestore.collection_connections),
            mappings=FirestoreEventMappingStore(client, firestore.collection_event_mappings),
            sync_logs=FirestoreSyncLogStore(client, firestore.collection_sync_logs),
            retry_queue=FirestoreRetryQueueStore(client, firestore.collection_retry_queue),
            appointments=FirestoreAppointmentStore(client, firestore.collection_appointments),
        )
        logger.info("sync_stores_created", extra={"component": "bootstrap", "backend": "firestore"})
        return result

    if backend == "memory":
        if not base.is_development:
            logger.warning(
                "memory_store_in_non_dev",
                extra={"component": "bootstrap", "backend": "memory", "environment": base.environment},
            )
        result = SyncStores(
            connections=MemoryConnectionStore(),
            mappings=MemoryEventMappingStore(),
            sync_logs=MemorySyncLogStore(),
            retry_queue=MemoryRetryQueueStore(),
            appointments=MemoryAppointmentStore(),
        )
        logger.info("sync_stores_created", extra={"component": "bootstrap", "backend": "memory"})
        return result

    msg = f"SYNC_STORE_BACKEND inválido: {backend}"
    raise ValueError(msg)


def create_dedupe_store(stores: StoreSettings, base: BaseSettings) -> AsyncDedupeProtocol:
    """Cria store de dedupe de notificações conforme DEDUPE_BACKEND."""
    backend = stores.dedupe_backend

    if backend == "redis":
        store: AsyncDedupeProtocol = RedisDedupeStore(create_async_redis_client(base.redis_url))
        logger.info("dedupe_store_created", extra={"component": "bootstrap", "backend": "redis"})
        return store

    if backend == "memory":
        if not base.is_development:
            logger.warning(
                "memory_dedupe_in_non_dev",
                extra={"component": "bootstrap", "backend": "memory", "environment": base.environment},
            )
        logger.info("dedupe_store_created", extra={"component": "bootstrap", "backend": "memory"})
        return MemoryDedupeStore()

    msg = f"DEDUPE_BACKEND inválido: {backend}"
    raise ValueError(msg)


def create_quota_counter(stores: StoreSettings, base: BaseSettings) -> QuotaCounterProtocol:
    """Cria contador de cota diária conforme QUOTA_BACKEND."""
    backend = stores.quota_backend

    if backend == "redis":
        counter: QuotaCounterProtocol = RedisQuotaCounter(create_async_redis_client(base.redis_url))
        logger.info("quota_counter_created", extra={"component": "bootstrap", "backend": "redis"})
        return counter

    if backend == "memory":
        logger.info("quota_counter_created", extra={"component": "bootstrap", "backend": "memory"})
        return MemoryQuotaCounter()

    msg = f"QUOTA_BACKEND inválido: {backend}"
    raise ValueError(msg)
