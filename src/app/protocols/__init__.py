"""Protocolos e contratos do core da aplicação."""

from .appointment_store import AppointmentStoreProtocol
from .calendar_provider import CalendarProviderProtocol
from .connection_store import ConnectionStoreProtocol
from .crypto import TokenCipherProtocol, TokenDecryptionError
from .dedupe import AsyncDedupeProtocol
from .event_mapping_store import EventMappingStoreProtocol
from .quota_counter import QuotaCounterProtocol
from .retry_queue_store import RetryQueueStoreProtocol
from .sync_log_store import SyncLogStoreProtocol
from .token_refresher import InvalidGrantError, RefreshedTokens, TokenRefresherProtocol

__all__ = [
    "AppointmentStoreProtocol",
    "AsyncDedupeProtocol",
    "CalendarProviderProtocol",
    "ConnectionStoreProtocol",
    "EventMappingStoreProtocol",
    "InvalidGrantError",
    "QuotaCounterProtocol",
    "RefreshedTokens",
    "RetryQueueStoreProtocol",
    "SyncLogStoreProtocol",
    "TokenCipherProtocol",
    "TokenDecryptionError",
    "TokenRefresherProtocol",
]
