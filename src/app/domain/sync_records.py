"""Registros persistidos da sincronizacao: mapeamentos, auditoria e retry."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.calendar_connection import utc_now

SyncDirection = Literal["push", "pull"]
SyncOperation = Literal[
    "create",
    "update",
    "delete",
    "import",
    "recreated",
    "skipped",
    "renew",
    "deactivate",
]
SyncType = Literal["push", "pull", "bulk", "webhook"]
SyncStatus = Literal["success", "failed", "partial"]
RetryOperation = Literal["create", "update", "delete", "recreated", "sync_changes"]
RetryState = Literal["pending", "succeeded", "failed_permanently"]


def _new_id() -> str:
    return uuid.uuid4().hex


class EventMapping(BaseModel):
    """Vinculo 1:1 entre agendamento e evento externo de uma conexao.

    Unico por appointment_id e por (connection_id, external_event_id).
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    appointment_id: str
    connection_id: str
    external_event_id: str
    last_synced_at: datetime
    sync_direction: SyncDirection = "push"
    created_at: datetime = Field(default_factory=utc_now)


class SyncLogEntry(BaseModel):
    """Registro de auditoria append-only (nunca atualizado)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(default_factory=_new_id)
    connection_id: str | None = None
    appointment_id: str | None = None
    external_event_id: str | None = None
    operation: SyncOperation
    sync_type: SyncType
    status: SyncStatus
    error_code: str | None = None
    error_message: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class RetryAttempt(BaseModel):
    attempted_at: datetime
    error: str
    error_code: str | None = None


class RetryQueueItem(BaseModel):
    """Operacao de sincronizacao aguardando nova tentativa.

    `attempt_count` e o indice do tier atual: 0 na criacao, +1 a cada
    retentativa que falha. Ao esgotar os tiers o item fica em
    `failed_permanently` ate intervencao do operador.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    connection_id: str
    appointment_id: str | None = None
    operation: RetryOperation
    external_event_id: str | None = None
    attempt_count: int = Field(default=0, ge=0)
    next_retry_at: datetime
    state: RetryState = "pending"
    last_error: str = ""
    last_error_code: str | None = None
    history: list[RetryAttempt] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "EventMapping",
    "RetryAttempt",
    "RetryOperation",
    "RetryQueueItem",
    "RetryState",
    "SyncDirection",
    "SyncLogEntry",
    "SyncOperation",
    "SyncStatus",
    "SyncType",
]
