"""Agregador de settings base."""

from __future__ import annotations

from config.settings.base.core import (
    BaseSettings,
    Environment,
    get_base_settings,
)
from config.settings.base.stores import (
    CounterBackend,
    StoreSettings,
    SyncStoreBackend,
    get_store_settings,
)

__all__ = [
    "BaseSettings",
    "CounterBackend",
    "Environment",
    "StoreSettings",
    "SyncStoreBackend",
    "get_base_settings",
    "get_store_settings",
]
