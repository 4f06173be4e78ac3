"""Settings do motor de sincronizacao com Google Calendar.

Centralizar a leitura de env aqui evita espalhar parse de configuracao
pela aplicacao e reduz risco de divergencia entre servicos.
"""

from __future__ import annotations

import base64
import binascii
import os
from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from config.settings.base.core import BaseSettings

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

DEFAULT_SYNC_STATUSES = ("confirmed", "checked_in", "in_progress", "completed")


class CalendarSyncSettings(BaseModel):
    """Configuracoes da sincronizacao agendamento <-> Google Calendar."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    # OAuth / credenciais
    google_client_id: str = Field(default="", description="Client ID OAuth do app Google.")
    google_client_secret: str = Field(default="", description="Client secret OAuth.")
    google_token_url: str = Field(default=GOOGLE_TOKEN_URL)
    token_encryption_key: str | None = Field(
        default=None,
        description="Chave AES-256 em base64 para cifrar tokens em repouso.",
    )
    token_refresh_margin_seconds: int = Field(
        default=300,
        ge=0,
        description="Renova o access token se expirar dentro desta margem.",
    )

    # Webhooks (canais de push)
    webhook_callback_url: str = Field(
        default="",
        description="URL publica HTTPS do endpoint de webhook.",
    )
    webhook_channel_token: str | None = Field(
        default=None,
        description="Token opaco ecoado pelo Google em X-Goog-Channel-Token.",
    )
    channel_ttl_seconds: int = Field(default=7 * 86400, ge=3600)
    renewal_threshold_seconds: int = Field(default=86400, ge=60)
    renewal_interval_seconds: int = Field(default=86400, ge=60)
    renewal_spacing_ms: int = Field(default=100, ge=0)
    renewal_deadline_seconds: float = Field(default=30.0, gt=0)
    notification_dedupe_ttl_seconds: int = Field(default=86400, ge=60)

    # Cliente da API (pacing/backoff)
    min_request_interval_ms: int = Field(default=100, ge=0)
    max_attempts: int = Field(default=5, ge=1, le=10)
    backoff_base_seconds: float = Field(default=1.0, gt=0)
    backoff_max_seconds: float = Field(default=32.0, gt=0)
    backoff_jitter_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = Field(default=20.0, gt=0)
    daily_quota_limit: int = Field(default=1_000_000, ge=1)

    # Processamento
    worker_pool_size: int = Field(default=4, ge=1)
    worker_queue_size: int = Field(default=100, ge=1)
    appointment_lock_timeout_seconds: float = Field(default=60.0, gt=0)
    initial_sync_window_days: int = Field(default=7, ge=1)
    auto_pause_failure_threshold: int = Field(default=10, ge=1)
    event_timezone: str = Field(default="America/Sao_Paulo")

    # Fila de retry (tiers fixos)
    retry_tiers_seconds: tuple[int, ...] = Field(default=(60, 300, 900), min_length=1)
    retry_batch_size: int = Field(default=50, ge=1)
    retry_spacing_ms: int = Field(default=200, ge=0)
    retry_sweep_interval_seconds: int = Field(default=60, ge=5)

    # Bulk sync
    bulk_batch_size: int = Field(default=10, ge=1)
    bulk_batch_delay_ms: int = Field(default=1000, ge=0)
    bulk_max_appointments: int = Field(default=500, ge=1)

    # Criterios de sincronizacao
    sync_statuses: tuple[str, ...] = Field(default=DEFAULT_SYNC_STATUSES)
    sync_past_appointments: bool = False
    sync_completed_appointments: bool = True

    # Endpoints operacionais
    cron_secret: str | None = Field(default=None, description="Segredo do cron externo.")
    admin_token: str | None = Field(default=None, description="Bearer do painel do operador.")
    scheduler_enabled: bool = Field(
        default=False,
        description="Roda renovacao e drenagem da fila no proprio processo.",
    )

    def encryption_key_bytes(self) -> bytes:
        """Decodifica a chave de cifragem (levanta ValueError se invalida)."""
        if not self.token_encryption_key:
            raise ValueError("CALENDAR_TOKEN_ENCRYPTION_KEY nao configurada")
        try:
            key = base64.b64decode(self.token_encryption_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("CALENDAR_TOKEN_ENCRYPTION_KEY nao e base64 valido") from exc
        if len(key) != 32:
            raise ValueError("CALENDAR_TOKEN_ENCRYPTION_KEY deve ter 32 bytes")
        return key

    def validate(self, base: BaseSettings) -> list[str]:
        """Valida configuracoes; ambientes nao-dev exigem segredos."""
        errors: list[str] = []

        if self.backoff_max_seconds < self.backoff_base_seconds:
            errors.append("CALENDAR_BACKOFF_MAX_SECONDS deve ser >= BACKOFF_BASE_SECONDS")
        if self.renewal_threshold_seconds >= self.channel_ttl_seconds:
            errors.append("CALENDAR_RENEWAL_THRESHOLD_SECONDS deve ser menor que o TTL do canal")
        if list(self.retry_tiers_seconds) != sorted(self.retry_tiers_seconds):
            errors.append("CALENDAR_RETRY_TIERS_SECONDS deve ser crescente")

        if self.token_encryption_key:
            try:
                self.encryption_key_bytes()
            except ValueError as exc:
                errors.append(str(exc))

        if base.is_development:
            return errors

        required = {
            "GOOGLE_OAUTH_CLIENT_ID": self.google_client_id,
            "GOOGLE_OAUTH_CLIENT_SECRET": self.google_client_secret,
            "CALENDAR_TOKEN_ENCRYPTION_KEY": self.token_encryption_key,
            "CALENDAR_WEBHOOK_CALLBACK_URL": self.webhook_callback_url,
            "CALENDAR_CRON_SECRET": self.cron_secret,
            "CALENDAR_ADMIN_TOKEN": self.admin_token,
        }
        errors.extend(f"{key} nao configurado" for key, value in required.items() if not value)

        if self.webhook_callback_url and not self.webhook_callback_url.startswith("https://"):
            errors.append("CALENDAR_WEBHOOK_CALLBACK_URL deve usar https")

        return errors


def _read_optional_env(key: str) -> str | None:
    """Retorna valor opcional da env sem propagar string vazia."""
    raw_value = os.getenv(key)
    if raw_value is None:
        return None
    stripped_value = raw_value.strip()
    return stripped_value or None


def _parse_bool(value: str) -> bool:
    """Converte texto de env em bool com o mesmo padrao dos outros settings."""
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _load_calendar_from_env() -> CalendarSyncSettings:
    """Carrega CalendarSyncSettings a partir de variaveis de ambiente."""
    retry_tiers = _read_optional_env("CALENDAR_RETRY_TIERS_SECONDS")
    sync_statuses = _read_optional_env("CALENDAR_SYNC_STATUSES")
    return CalendarSyncSettings(
        google_client_id=os.getenv("GOOGLE_OAUTH_CLIENT_ID", ""),
        google_client_secret=os.getenv("GOOGLE_OAUTH_CLIENT_SECRET", ""),
        google_token_url=os.getenv("GOOGLE_OAUTH_TOKEN_URL", GOOGLE_TOKEN_URL),
        token_encryption_key=_read_optional_env("CALENDAR_TOKEN_ENCRYPTION_KEY"),
        token_refresh_margin_seconds=int(os.getenv("CALENDAR_TOKEN_REFRESH_MARGIN_SECONDS", "300")),
        webhook_callback_url=os.getenv("CALENDAR_WEBHOOK_CALLBACK_URL", ""),
        webhook_channel_token=_read_optional_env("CALENDAR_WEBHOOK_CHANNEL_TOKEN"),
        channel_ttl_seconds=int(os.getenv("CALENDAR_CHANNEL_TTL_SECONDS", str(7 * 86400))),
        renewal_threshold_seconds=int(os.getenv("CALENDAR_RENEWAL_THRESHOLD_SECONDS", "86400")),
        renewal_interval_seconds=int(os.getenv("CALENDAR_RENEWAL_INTERVAL_SECONDS", "86400")),
        renewal_spacing_ms=int(os.getenv("CALENDAR_RENEWAL_SPACING_MS", "100")),
        renewal_deadline_seconds=float(os.getenv("CALENDAR_RENEWAL_DEADLINE_SECONDS", "30")),
        notification_dedupe_ttl_seconds=int(
            os.getenv("CALENDAR_NOTIFICATION_DEDUPE_TTL_SECONDS", "86400")
        ),
        min_request_interval_ms=int(os.getenv("CALENDAR_MIN_REQUEST_INTERVAL_MS", "100")),
        max_attempts=int(os.getenv("CALENDAR_MAX_ATTEMPTS", "5")),
        backoff_base_seconds=float(os.getenv("CALENDAR_BACKOFF_BASE_SECONDS", "1")),
        backoff_max_seconds=float(os.getenv("CALENDAR_BACKOFF_MAX_SECONDS", "32")),
        backoff_jitter_seconds=float(os.getenv("CALENDAR_BACKOFF_JITTER_SECONDS", "1")),
        request_timeout_seconds=float(os.getenv("CALENDAR_REQUEST_TIMEOUT_SECONDS", "20")),
        daily_quota_limit=int(os.getenv("CALENDAR_DAILY_QUOTA_LIMIT", "1000000")),
        worker_pool_size=int(os.getenv("CALENDAR_WORKER_POOL_SIZE", "4")),
        worker_queue_size=int(os.getenv("CALENDAR_WORKER_QUEUE_SIZE", "100")),
        appointment_lock_timeout_seconds=float(
            os.getenv("CALENDAR_APPOINTMENT_LOCK_TIMEOUT_SECONDS", "60")
        ),
        initial_sync_window_days=int(os.getenv("CALENDAR_INITIAL_SYNC_WINDOW_DAYS", "7")),
        auto_pause_failure_threshold=int(os.getenv("CALENDAR_AUTO_PAUSE_THRESHOLD", "10")),
        event_timezone=os.getenv("CALENDAR_EVENT_TIMEZONE", "America/Sao_Paulo"),
        retry_tiers_seconds=(
            tuple(int(item) for item in _parse_csv(retry_tiers)) if retry_tiers else (60, 300, 900)
        ),
        retry_batch_size=int(os.getenv("CALENDAR_RETRY_BATCH_SIZE", "50")),
        retry_spacing_ms=int(os.getenv("CALENDAR_RETRY_SPACING_MS", "200")),
        retry_sweep_interval_seconds=int(os.getenv("CALENDAR_RETRY_SWEEP_INTERVAL_SECONDS", "60")),
        bulk_batch_size=int(os.getenv("CALENDAR_BULK_BATCH_SIZE", "10")),
        bulk_batch_delay_ms=int(os.getenv("CALENDAR_BULK_BATCH_DELAY_MS", "1000")),
        bulk_max_appointments=int(os.getenv("CALENDAR_BULK_MAX_APPOINTMENTS", "500")),
        sync_statuses=_parse_csv(sync_statuses) if sync_statuses else DEFAULT_SYNC_STATUSES,
        sync_past_appointments=_parse_bool(os.getenv("CALENDAR_SYNC_PAST_APPOINTMENTS", "false")),
        sync_completed_appointments=_parse_bool(
            os.getenv("CALENDAR_SYNC_COMPLETED_APPOINTMENTS", "true")
        ),
        cron_secret=_read_optional_env("CALENDAR_CRON_SECRET"),
        admin_token=_read_optional_env("CALENDAR_ADMIN_TOKEN"),
        scheduler_enabled=_parse_bool(os.getenv("CALENDAR_SCHEDULER_ENABLED", "false")),
    )


@lru_cache(maxsize=1)
def get_calendar_settings() -> CalendarSyncSettings:
    """Retorna instancia cacheada de CalendarSyncSettings."""
    return _load_calendar_from_env()


__all__ = [
    "DEFAULT_SYNC_STATUSES",
    "GOOGLE_TOKEN_URL",
    "CalendarSyncSettings",
    "get_calendar_settings",
]
