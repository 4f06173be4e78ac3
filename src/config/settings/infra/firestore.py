"""Settings do Firestore (projeto e nomes de collections)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class FirestoreSettings:
    """Configurações do Firestore.

    Attributes:
        project_id: ID do projeto GCP (usa GCP_PROJECT se não definido)
        database: ID do database Firestore
        collection_connections: Conexões de agenda por operador
        collection_event_mappings: Vínculos agendamento <-> evento externo
        collection_sync_logs: Auditoria append-only
        collection_retry_queue: Operações aguardando nova tentativa
        collection_appointments: Agendamentos (somente leitura)
    """

    project_id: str = ""
    database: str = "(default)"
    collection_connections: str = "calendar_connections"
    collection_event_mappings: str = "calendar_event_mappings"
    collection_sync_logs: str = "calendar_sync_logs"
    collection_retry_queue: str = "calendar_retry_queue"
    collection_appointments: str = "appointments"

    def validate(self, gcp_project: str) -> list[str]:
        errors: list[str] = []
        if not (self.project_id or gcp_project):
            errors.append("FIRESTORE_PROJECT_ID ou GCP_PROJECT deve estar configurado")
        return errors


def _load_firestore_from_env() -> FirestoreSettings:
    """Carrega FirestoreSettings de variáveis de ambiente."""
    return FirestoreSettings(
        project_id=os.getenv("FIRESTORE_PROJECT_ID", ""),
        database=os.getenv("FIRESTORE_DATABASE", "(default)"),
        collection_connections=os.getenv(
            "FIRESTORE_COLLECTION_CONNECTIONS", "calendar_connections"
        ),
        collection_event_mappings=os.getenv(
            "FIRESTORE_COLLECTION_EVENT_MAPPINGS", "calendar_event_mappings"
        ),
        collection_sync_logs=os.getenv("FIRESTORE_COLLECTION_SYNC_LOGS", "calendar_sync_logs"),
        collection_retry_queue=os.getenv(
            "FIRESTORE_COLLECTION_RETRY_QUEUE", "calendar_retry_queue"
        ),
        collection_appointments=os.getenv("FIRESTORE_COLLECTION_APPOINTMENTS", "appointments"),
    )


@lru_cache(maxsize=1)
def get_firestore_settings() -> FirestoreSettings:
    """Retorna instância cacheada de FirestoreSettings."""
    return _load_firestore_from_env()
