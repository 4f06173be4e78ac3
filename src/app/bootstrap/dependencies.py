"""Composição do motor de sincronização de agenda.

Conecta implementações concretas (stores, Google, cifra) aos serviços.
O motor resultante fica em `app.state.calendar_engine` e é o único ponto
que as rotas e o scheduler usam.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.bootstrap.dependencies_stores import (
    create_dedupe_store,
    create_quota_counter,
    create_sync_stores,
)
from app.infra.calendar import GoogleCalendarProvider, GoogleOAuthTokenRefresher
from app.infra.crypto import AesGcmTokenCipher
from app.services.bulk_sync import BulkSyncService
from app.services.calendar_api_client import BackoffPolicy, RateLimitedCalendarClient
from app.services.calendar_import import CalendarImportService
from app.services.credential_vault import CredentialVault
from app.services.keyed_lock import KeyedLock
from app.services.renewal_scheduler import WebhookRenewalJob
from app.services.retry_queue import RetryQueue
from app.services.sync_criteria import SyncCriteria
from app.services.sync_health import SyncHealthService
from app.services.sync_logger import SyncLogger
from app.services.sync_processor import SyncProcessor
from app.services.webhook_ingress import WebhookIngress
from app.services.webhook_registration import WebhookRegistrar
from app.services.worker_pool import SyncWorkerPool

if TYPE_CHECKING:
    from app.bootstrap.dependencies_stores import SyncStores
    from app.protocols.calendar_provider import CalendarProviderProtocol
    from app.protocols.crypto import TokenCipherProtocol
    from app.protocols.dedupe import AsyncDedupeProtocol
    from app.protocols.quota_counter import QuotaCounterProtocol
    from app.protocols.token_refresher import TokenRefresherProtocol
    from app.services.retry_queue import RetryDrainSummary
    from config.settings import (
        BaseSettings,
        CalendarSyncSettings,
        FirestoreSettings,
        StoreSettings,
    )

logger = logging.getLogger(__name__)


@dataclass
class CalendarSyncEngine:
    settings: CalendarSyncSettings
    stores: SyncStores
    vault: CredentialVault
    api: RateLimitedCalendarClient
    sync_logger: SyncLogger
    retry_queue: RetryQueue
    processor: SyncProcessor
    registrar: WebhookRegistrar
    renewal_job: WebhookRenewalJob
    ingress: WebhookIngress
    bulk_sync: BulkSyncService
    importer: CalendarImportService
    health: SyncHealthService
    pool: SyncWorkerPool
    refresher: TokenRefresherProtocol

    def start(self) -> None:
        self.pool.start()

    async def stop(self) -> None:
        await self.pool.stop()
        close = getattr(self.refresher, "aclose", None)
        if callable(close):
            await close()

    async def drain_retry_queue(self) -> RetryDrainSummary:
        return await self.retry_queue.drain(self.processor.retry)


def create_token_cipher(settings: CalendarSyncSettings, base: BaseSettings) -> TokenCipherProtocol:
    """Cifra AES-GCM; em development sem chave usa chave efêmera."""
    if settings.token_encryption_key or not base.is_development:
        return AesGcmTokenCipher(settings.encryption_key_bytes())
    logger.warning(
        "token_cipher_ephemeral_key",
        extra={"component": "bootstrap", "environment": base.environment},
    )
    return AesGcmTokenCipher(AESGCM.generate_key(bit_length=256))


def build_calendar_engine(
    settings: CalendarSyncSettings,
    *,
    stores: SyncStores,
    provider: CalendarProviderProtocol,
    refresher: TokenRefresherProtocol,
    cipher: TokenCipherProtocol,
    dedupe: AsyncDedupeProtocol | None = None,
    quota_counter: QuotaCounterProtocol | None = None,
) -> CalendarSyncEngine:
    """Monta o motor a partir das dependências já criadas (usado também em testes)."""
    vault = CredentialVault(
        connection_store=stores.connections,
        cipher=cipher,
        refresher=refresher,
        refresh_margin=timedelta(seconds=settings.token_refresh_margin_seconds),
    )
    api = RateLimitedCalendarClient(
        provider=provider,
        vault=vault,
        policy=BackoffPolicy(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base_seconds,
            max_delay=settings.backoff_max_seconds,
            jitter=settings.backoff_jitter_seconds,
        ),
        min_interval_seconds=settings.min_request_interval_ms / 1000,
        request_timeout_seconds=settings.request_timeout_seconds,
        quota_counter=quota_counter,
        daily_quota_limit=settings.daily_quota_limit,
    )
    sync_logger = SyncLogger(stores.sync_logs)
    retry_queue = RetryQueue(
        store=stores.retry_queue,
        sync_logger=sync_logger,
        tiers_seconds=settings.retry_tiers_seconds,
        batch_size=settings.retry_batch_size,
        item_spacing_seconds=settings.retry_spacing_ms / 1000,
    )
    processor = SyncProcessor(
        connection_store=stores.connections,
        mapping_store=stores.mappings,
        appointment_store=stores.appointments,
        api=api,
        sync_logger=sync_logger,
        retry_queue=retry_queue,
        locks=KeyedLock(),
        criteria=SyncCriteria(
            statuses=frozenset(settings.sync_statuses),
            sync_past=settings.sync_past_appointments,
            sync_completed=settings.sync_completed_appointments,
        ),
        timezone=settings.event_timezone,
        lock_timeout_seconds=settings.appointment_lock_timeout_seconds,
        initial_window=timedelta(days=settings.initial_sync_window_days),
        pause_threshold=settings.auto_pause_failure_threshold,
    )
    registrar = WebhookRegistrar(
        connection_store=stores.connections,
        api=api,
        callback_url=settings.webhook_callback_url,
        channel_token=settings.webhook_channel_token,
        ttl_seconds=settings.channel_ttl_seconds,
    )
    pool = SyncWorkerPool(size=settings.worker_pool_size, max_queue=settings.worker_queue_size)
    renewal_threshold = timedelta(seconds=settings.renewal_threshold_seconds)

    return CalendarSyncEngine(
        settings=settings,
        stores=stores,
        vault=vault,
        api=api,
        sync_logger=sync_logger,
        retry_queue=retry_queue,
        processor=processor,
        registrar=registrar,
        renewal_job=WebhookRenewalJob(
            connection_store=stores.connections,
            registrar=registrar,
            sync_logger=sync_logger,
            threshold=renewal_threshold,
            spacing_seconds=settings.renewal_spacing_ms / 1000,
            deadline_seconds=settings.renewal_deadline_seconds,
        ),
        ingress=WebhookIngress(
            connection_store=stores.connections,
            processor=processor,
            pool=pool,
            sync_logger=sync_logger,
            dedupe=dedupe,
            dedupe_ttl_seconds=settings.notification_dedupe_ttl_seconds,
            channel_token=settings.webhook_channel_token,
        ),
        bulk_sync=BulkSyncService(
            connection_store=stores.connections,
            appointment_store=stores.appointments,
            processor=processor,
            batch_size=settings.bulk_batch_size,
            batch_delay_seconds=settings.bulk_batch_delay_ms / 1000,
            max_appointments=settings.bulk_max_appointments,
        ),
        importer=CalendarImportService(
            connection_store=stores.connections,
            mapping_store=stores.mappings,
            appointment_store=stores.appointments,
            api=api,
            sync_logger=sync_logger,
        ),
        health=SyncHealthService(
            connection_store=stores.connections,
            sync_log_store=stores.sync_logs,
            retry_queue=retry_queue,
            renewal_threshold=renewal_threshold,
        ),
        pool=pool,
        refresher=refresher,
    )


def create_calendar_engine(
    settings: CalendarSyncSettings,
    base: BaseSettings,
    store_settings: StoreSettings,
    firestore: FirestoreSettings,
) -> CalendarSyncEngine:
    """Cria o motor com os backends de produção conforme env."""
    engine = build_calendar_engine(
        settings,
        stores=create_sync_stores(store_settings, firestore, base),
        provider=GoogleCalendarProvider(timeout_seconds=settings.request_timeout_seconds),
        refresher=GoogleOAuthTokenRefresher(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            token_url=settings.google_token_url,
            timeout_seconds=settings.request_timeout_seconds,
        ),
        cipher=create_token_cipher(settings, base),
        dedupe=create_dedupe_store(store_settings, base),
        quota_counter=create_quota_counter(store_settings, base),
    )
    logger.info(
        "calendar_engine_created",
        extra={
            "component": "bootstrap",
            "sync_backend": store_settings.sync_backend,
            "workers": settings.worker_pool_size,
        },
    )
    return engine
