"""Bootstrap da aplicação — inicialização e wiring.

Este módulo é o composition root: configura logging, valida settings
e cria o motor de sincronização com as implementações concretas.

Uso:
    from app.bootstrap import initialize_app, create_engine_from_env

    initialize_app()
    engine = create_engine_from_env()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.observability import get_connection_id, get_correlation_id
from config.logging import configure_logging
from config.settings import (
    get_base_settings,
    get_calendar_settings,
    get_firestore_settings,
    get_store_settings,
)

if TYPE_CHECKING:
    from app.bootstrap.dependencies import CalendarSyncEngine

# Nome do serviço para logs e métricas
SERVICE_NAME = "calendar_sync"

STRICT_VALIDATION_ENVS = {"staging", "production"}

logger = logging.getLogger(__name__)


def initialize_app() -> None:
    """Configura logging JSON com correlation_id e connection_id.

    Deve ser chamada uma vez no início do serviço.
    """
    base = get_base_settings()
    configure_logging(
        level=base.log_level.upper(),
        service_name=SERVICE_NAME,
        correlation_id_getter=get_correlation_id,
        connection_id_getter=get_connection_id,
    )


def initialize_test_app() -> None:
    """Inicializa a aplicação para testes (nível DEBUG)."""
    configure_logging(
        level="DEBUG",
        service_name=f"{SERVICE_NAME}_test",
        correlation_id_getter=get_correlation_id,
        connection_id_getter=get_connection_id,
    )


def validate_runtime_settings() -> None:
    """Valida settings obrigatórias no startup.

    Em `staging`/`production` falha rápido para impedir boot inválido.
    Em `development` mantém alerta sem bloquear execução local.
    """
    base = get_base_settings()
    stores = get_store_settings()
    errors: list[str] = []

    errors.extend(f"base: {error}" for error in base.validate())
    errors.extend(f"stores: {error}" for error in stores.validate(base))
    errors.extend(f"calendar: {error}" for error in get_calendar_settings().validate(base))
    if stores.sync_backend == "firestore":
        firestore_errors = get_firestore_settings().validate(base.gcp_project)
        errors.extend(f"firestore: {error}" for error in firestore_errors)

    if not errors:
        logger.info(
            "settings_validated",
            extra={"component": "bootstrap", "result": "ok", "environment": base.environment},
        )
        return

    logger.warning(
        "settings_validation_failed",
        extra={
            "component": "bootstrap",
            "result": "failed",
            "environment": base.environment,
            "error_count": len(errors),
            "errors": errors,
        },
    )
    if base.environment in STRICT_VALIDATION_ENVS:
        details = "\n".join(f"- {error}" for error in errors)
        raise RuntimeError(f"Configuração inválida para {base.environment}:\n{details}")


def create_engine_from_env() -> CalendarSyncEngine:
    """Cria o motor de sincronização conforme as settings de ambiente."""
    from app.bootstrap.dependencies import create_calendar_engine

    return create_calendar_engine(
        get_calendar_settings(),
        get_base_settings(),
        get_store_settings(),
        get_firestore_settings(),
    )


__all__ = [
    "SERVICE_NAME",
    "create_engine_from_env",
    "initialize_app",
    "initialize_test_app",
    "validate_runtime_settings",
]
