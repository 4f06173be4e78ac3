"""Testes do composition root: cifra, stores, scheduler e validação no startup."""

from __future__ import annotations

import base64
import os
from collections.abc import Iterator

import pytest

from app.bootstrap import validate_runtime_settings
from app.bootstrap.dependencies import create_token_cipher
from app.bootstrap.dependencies_stores import create_dedupe_store, create_sync_stores
from app.bootstrap.scheduler import RENEWAL_JOB_ID, RETRY_JOB_ID, create_scheduler
from app.infra.stores import MemoryConnectionStore, MemoryDedupeStore
from config.settings import (
    BaseSettings,
    CalendarSyncSettings,
    FirestoreSettings,
    StoreSettings,
    get_base_settings,
    get_calendar_settings,
    get_store_settings,
)
from tests.fakes.fake_engine import create_test_engine


@pytest.fixture
def clear_settings_cache() -> Iterator[None]:
    for getter in (get_base_settings, get_calendar_settings, get_store_settings):
        getter.cache_clear()
    yield
    for getter in (get_base_settings, get_calendar_settings, get_store_settings):
        getter.cache_clear()


class TestTokenCipher:
    def test_development_without_key_uses_ephemeral_key(self) -> None:
        cipher = create_token_cipher(CalendarSyncSettings(), BaseSettings())

        assert cipher.decrypt(cipher.encrypt("token")) == "token"

    def test_configured_key_is_used(self) -> None:
        key = base64.b64encode(os.urandom(32)).decode()
        settings = CalendarSyncSettings(token_encryption_key=key)

        first = create_token_cipher(settings, BaseSettings())
        second = create_token_cipher(settings, BaseSettings())

        assert second.decrypt(first.encrypt("token")) == "token"

    def test_production_without_key_fails(self) -> None:
        with pytest.raises(ValueError, match="TOKEN_ENCRYPTION_KEY"):
            create_token_cipher(CalendarSyncSettings(), BaseSettings(environment="production"))


class TestStoreFactories:
    def test_memory_backends(self) -> None:
        base = BaseSettings()
        stores = create_sync_stores(StoreSettings(), FirestoreSettings(), base)

        assert isinstance(stores.connections, MemoryConnectionStore)
        assert isinstance(create_dedupe_store(StoreSettings(), base), MemoryDedupeStore)

    def test_invalid_backend_raises(self) -> None:
        with pytest.raises(ValueError, match="SYNC_STORE_BACKEND"):
            create_sync_stores(
                StoreSettings(sync_backend="postgres"),  # type: ignore[arg-type]
                FirestoreSettings(),
                BaseSettings(),
            )


class TestScheduler:
    def test_registers_renewal_and_retry_jobs(self) -> None:
        engine, _ = create_test_engine(renewal_interval_seconds=3600, retry_sweep_interval_seconds=30)

        scheduler = create_scheduler(engine)

        renewal = scheduler.get_job(RENEWAL_JOB_ID)
        retry = scheduler.get_job(RETRY_JOB_ID)
        assert renewal is not None and renewal.trigger.interval.total_seconds() == 3600
        assert retry is not None and retry.trigger.interval.total_seconds() == 30
        assert renewal.max_instances == 1


class TestRuntimeValidation:
    def test_development_only_warns(
        self, monkeypatch: pytest.MonkeyPatch, clear_settings_cache: None
    ) -> None:
        monkeypatch.setenv("ENVIRONMENT", "development")
        monkeypatch.setenv("SYNC_STORE_BACKEND", "memory")

        validate_runtime_settings()

    def test_production_with_memory_backend_fails_fast(
        self, monkeypatch: pytest.MonkeyPatch, clear_settings_cache: None
    ) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SYNC_STORE_BACKEND", "memory")

        with pytest.raises(RuntimeError, match="SYNC_STORE_BACKEND=memory"):
            validate_runtime_settings()
