"""Agregador de settings do serviço de sincronização de agenda.

Re-exporta todas as settings e funções de cada módulo.
"""

from __future__ import annotations

from config.settings.base import (
    BaseSettings,
    CounterBackend,
    Environment,
    StoreSettings,
    SyncStoreBackend,
    get_base_settings,
    get_store_settings,
)
from config.settings.calendar import (
    CalendarSyncSettings,
    get_calendar_settings,
)
from config.settings.infra import (
    FirestoreSettings,
    get_firestore_settings,
)

__all__ = [
    "BaseSettings",
    "CalendarSyncSettings",
    "CounterBackend",
    "Environment",
    "FirestoreSettings",
    "StoreSettings",
    "SyncStoreBackend",
    "get_base_settings",
    "get_calendar_settings",
    "get_firestore_settings",
    "get_store_settings",
]
