"""Conexao de um operador com sua agenda Google."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


class CalendarConnection(BaseModel):
    """Uma conexao por operador; no maximo uma ativa por vez.

    Tokens ficam cifrados (AES-GCM) e so sao abertos pelo CredentialVault.
    `token_version` e incrementado a cada troca de tokens para permitir
    compare-and-set na renovacao.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Identificador da conexao.")
    owner_id: str = Field(..., description="Operador dono da conexao.")
    access_token_encrypted: str = Field(...)
    refresh_token_encrypted: str = Field(...)
    token_expiry: datetime = Field(..., description="Expiracao do access token (UTC).")
    token_version: int = Field(default=0, ge=0)
    calendar_id: str = Field(default="primary")
    account_email: str = Field(default="")
    is_active: bool = Field(default=True)
    deactivated_reason: str | None = Field(default=None)

    last_sync_at: datetime | None = Field(default=None)
    sync_token: str | None = Field(default=None, description="Token incremental do Google.")

    webhook_channel_id: str | None = Field(default=None)
    webhook_resource_id: str | None = Field(default=None)
    webhook_expiration: datetime | None = Field(default=None)

    consecutive_failures: int = Field(default=0, ge=0)
    auto_sync_paused: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def has_webhook(self) -> bool:
        return bool(
            self.webhook_channel_id and self.webhook_resource_id and self.webhook_expiration
        )

    def webhook_expires_within(self, now: datetime, threshold: timedelta) -> bool:
        """True se nao ha canal ou se ele expira ate `now + threshold`."""
        if not self.has_webhook or self.webhook_expiration is None:
            return True
        return self.webhook_expiration <= now + threshold


__all__ = ["CalendarConnection", "utc_now"]
