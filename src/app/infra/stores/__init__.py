"""Stores — implementações concretas de persistência.

Módulos disponíveis:
    - firestore_*: conexões, mapeamentos, auditoria, fila de retry e
      leitura de agendamentos no Firestore
    - redis_dedupe_store: dedupe de notificações (SET NX EX)
    - redis_quota_counter: contador diário de chamadas à API
    - memory_stores: stores em memória para desenvolvimento/testes
"""

from __future__ import annotations

from app.infra.stores.firestore_appointment_store import FirestoreAppointmentStore
from app.infra.stores.firestore_connection_store import FirestoreConnectionStore
from app.infra.stores.firestore_event_mapping_store import FirestoreEventMappingStore
from app.infra.stores.firestore_retry_queue_store import FirestoreRetryQueueStore
from app.infra.stores.firestore_sync_log_store import FirestoreSyncLogStore
from app.infra.stores.memory_stores import (
    MemoryAppointmentStore,
    MemoryConnectionStore,
    MemoryDedupeStore,
    MemoryEventMappingStore,
    MemoryQuotaCounter,
    MemoryRetryQueueStore,
    MemorySyncLogStore,
)
from app.infra.stores.redis_dedupe_store import RedisDedupeStore
from app.infra.stores.redis_quota_counter import RedisQuotaCounter

__all__ = [
    # Firestore
    "FirestoreAppointmentStore",
    "FirestoreConnectionStore",
    "FirestoreEventMappingStore",
    "FirestoreRetryQueueStore",
    "FirestoreSyncLogStore",
    # Memory (dev/test)
    "MemoryAppointmentStore",
    "MemoryConnectionStore",
    "MemoryDedupeStore",
    "MemoryEventMappingStore",
    "MemoryQuotaCounter",
    "MemoryRetryQueueStore",
    "MemorySyncLogStore",
    # Redis
    "RedisDedupeStore",
    "RedisQuotaCounter",
]
