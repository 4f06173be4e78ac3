"""Settings de backends de persistência.

- SYNC_STORE_BACKEND: conexões, mapeamentos, logs, fila de retry e agendamentos
- DEDUPE_BACKEND: dedupe de notificações de webhook
- QUOTA_BACKEND: contador diário de chamadas à API
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from config.settings.base.core import BaseSettings

SyncStoreBackend = Literal["memory", "firestore"]
CounterBackend = Literal["memory", "redis"]


@dataclass(frozen=True)
class StoreSettings:
    """Seleção de backends por responsabilidade."""

    sync_backend: SyncStoreBackend = "memory"
    dedupe_backend: CounterBackend = "memory"
    quota_backend: CounterBackend = "memory"

    def validate(self, base: BaseSettings) -> list[str]:
        """Valida combinação de backends com o ambiente."""
        errors: list[str] = []

        if self.sync_backend not in {"memory", "firestore"}:
            errors.append(f"SYNC_STORE_BACKEND inválido: {self.sync_backend}")
        for name, backend in (("DEDUPE_BACKEND", self.dedupe_backend), ("QUOTA_BACKEND", self.quota_backend)):
            if backend not in {"memory", "redis"}:
                errors.append(f"{name} inválido: {backend}")
            if backend == "redis" and not base.redis_url:
                errors.append(f"{name}=redis requer REDIS_URL configurado")

        if not base.is_development:
            if self.sync_backend == "memory":
                errors.append("SYNC_STORE_BACKEND=memory proibido em staging/production")
            if self.dedupe_backend == "memory":
                errors.append("DEDUPE_BACKEND=memory proibido em staging/production")

        if self.sync_backend == "firestore" and not base.gcp_project:
            errors.append("SYNC_STORE_BACKEND=firestore requer GCP_PROJECT configurado")

        return errors


def _load_stores_from_env() -> StoreSettings:
    """Carrega StoreSettings de variáveis de ambiente (sem fallback silencioso)."""
    return StoreSettings(
        sync_backend=os.getenv("SYNC_STORE_BACKEND", "memory").lower(),  # type: ignore[arg-type]
        dedupe_backend=os.getenv("DEDUPE_BACKEND", "memory").lower(),  # type: ignore[arg-type]
        quota_backend=os.getenv("QUOTA_BACKEND", "memory").lower(),  # type: ignore[arg-type]
    )


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    """Retorna instância cacheada de StoreSettings."""
    return _load_stores_from_env()
