"""Testes de carregamento e validação das settings."""

from __future__ import annotations

import base64
import os

import pytest

from config.settings import BaseSettings, CalendarSyncSettings, StoreSettings
from config.settings.calendar import _load_calendar_from_env

VALID_KEY = base64.b64encode(os.urandom(32)).decode()

PRODUCTION = BaseSettings(environment="production", gcp_project="proj", redis_url="redis://x")
DEVELOPMENT = BaseSettings()


def _production_calendar(**overrides: object) -> CalendarSyncSettings:
    values: dict[str, object] = {
        "google_client_id": "client",
        "google_client_secret": "secret",
        "token_encryption_key": VALID_KEY,
        "webhook_callback_url": "https://sync.example.com/webhook/google-calendar",
        "cron_secret": "cron",
        "admin_token": "admin",
        **overrides,
    }
    return CalendarSyncSettings(**values)  # type: ignore[arg-type]


class TestBaseSettings:
    def test_defaults_are_development(self) -> None:
        assert DEVELOPMENT.is_development
        assert DEVELOPMENT.validate() == []

    def test_empty_service_name_is_invalid(self) -> None:
        errors = BaseSettings(service_name="").validate()
        assert any("SERVICE_NAME" in e for e in errors)


class TestStoreSettings:
    def test_memory_backends_allowed_in_development(self) -> None:
        assert StoreSettings().validate(DEVELOPMENT) == []

    def test_memory_backends_forbidden_in_production(self) -> None:
        errors = StoreSettings().validate(PRODUCTION)

        assert "SYNC_STORE_BACKEND=memory proibido em staging/production" in errors
        assert "DEDUPE_BACKEND=memory proibido em staging/production" in errors

    def test_redis_requires_url(self) -> None:
        errors = StoreSettings(dedupe_backend="redis").validate(DEVELOPMENT)
        assert "DEDUPE_BACKEND=redis requer REDIS_URL configurado" in errors

    def test_production_stack_is_valid(self) -> None:
        stores = StoreSettings(sync_backend="firestore", dedupe_backend="redis", quota_backend="redis")
        assert stores.validate(PRODUCTION) == []


class TestCalendarSyncSettings:
    def test_development_needs_no_secrets(self) -> None:
        assert CalendarSyncSettings().validate(DEVELOPMENT) == []

    def test_production_requires_secrets(self) -> None:
        errors = CalendarSyncSettings().validate(PRODUCTION)

        for key in (
            "GOOGLE_OAUTH_CLIENT_ID",
            "CALENDAR_TOKEN_ENCRYPTION_KEY",
            "CALENDAR_WEBHOOK_CALLBACK_URL",
            "CALENDAR_CRON_SECRET",
        ):
            assert f"{key} nao configurado" in errors

    def test_complete_production_config_is_valid(self) -> None:
        assert _production_calendar().validate(PRODUCTION) == []

    def test_callback_must_be_https(self) -> None:
        settings = _production_calendar(webhook_callback_url="http://sync.example.com/hook")
        assert "CALENDAR_WEBHOOK_CALLBACK_URL deve usar https" in settings.validate(PRODUCTION)

    def test_inconsistent_timings_are_reported(self) -> None:
        settings = CalendarSyncSettings(
            backoff_base_seconds=10,
            backoff_max_seconds=5,
            retry_tiers_seconds=(300, 60),
            channel_ttl_seconds=3600,
            renewal_threshold_seconds=7200,
        )

        errors = settings.validate(DEVELOPMENT)

        assert len(errors) == 3

    def test_encryption_key_is_decoded(self) -> None:
        assert len(_production_calendar().encryption_key_bytes()) == 32

    @pytest.mark.parametrize(
        "key",
        ["nao-e-base64!!", base64.b64encode(b"curta").decode()],
    )
    def test_invalid_encryption_key(self, key: str) -> None:
        settings = CalendarSyncSettings(token_encryption_key=key)

        with pytest.raises(ValueError):
            settings.encryption_key_bytes()
        assert settings.validate(DEVELOPMENT)

    def test_load_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CALENDAR_RETRY_TIERS_SECONDS", "30, 120")
        monkeypatch.setenv("CALENDAR_SYNC_STATUSES", "confirmed,pending")
        monkeypatch.setenv("CALENDAR_SCHEDULER_ENABLED", "true")
        monkeypatch.setenv("CALENDAR_CRON_SECRET", "   ")

        settings = _load_calendar_from_env()

        assert settings.retry_tiers_seconds == (30, 120)
        assert settings.sync_statuses == ("confirmed", "pending")
        assert settings.scheduler_enabled is True
        assert settings.cron_secret is None
