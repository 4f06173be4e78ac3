"""Entrypoint do serviço de sincronização de agenda.

Inicializa o bootstrap e expõe a aplicação ASGI (FastAPI).

Uso (produção):
    uvicorn app.app:app --host 0.0.0.0 --port 8080

Uso (desenvolvimento):
    uvicorn app.app:app --reload --host 0.0.0.0 --port 8080

Cloud Run:
    O container deve expor a porta 8080 (padrão do Cloud Run).
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from fastapi import FastAPI

from api.routes import create_api_router
from app.bootstrap import create_engine_from_env, initialize_app, validate_runtime_settings
from app.bootstrap.clients import create_async_redis_client, create_firestore_client
from app.bootstrap.scheduler import create_scheduler
from config.logging import get_logger
from config.settings import get_base_settings, get_firestore_settings, get_store_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

# Inicializar logging ANTES de qualquer import que use logger
initialize_app()

logger = get_logger(__name__)

SERVICE = "calendar-sync"


async def _seed_firestore_health_doc(firestore_client: object) -> None:
    """Escreve documento mínimo de health para check de readiness."""

    def _write_doc() -> None:
        firestore_client.collection("_health").document("check").set(  # type: ignore[attr-defined]
            {
                "updated_at": datetime.now(UTC).isoformat(),
                "service": SERVICE,
            }
        )

    await asyncio.to_thread(_write_doc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Gerencia ciclo de vida da aplicação.

    Startup:
    - Valida configurações
    - Cria o motor de sincronização e inicia o pool de workers
    - Inicia o scheduler in-process (se habilitado)

    Shutdown:
    - Para o scheduler e drena o pool
    - Fecha conexões
    """
    logger.info("app_starting", extra={"service": SERVICE})
    validate_runtime_settings()
    base = get_base_settings()
    stores = get_store_settings()

    app.state.redis_client = None
    app.state.firestore_client = None
    app.state.scheduler = None

    engine = create_engine_from_env()
    app.state.calendar_engine = engine
    engine.start()

    if "redis" in {stores.dedupe_backend, stores.quota_backend}:
        app.state.redis_client = create_async_redis_client(base.redis_url)

    if stores.sync_backend == "firestore":
        firestore = get_firestore_settings()
        app.state.firestore_client = create_firestore_client(
            firestore.project_id or base.gcp_project, firestore.database
        )
        await _seed_firestore_health_doc(app.state.firestore_client)

    if engine.settings.scheduler_enabled:
        scheduler = create_scheduler(engine)
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("scheduler_started", extra={"service": SERVICE})

    yield

    logger.info("app_shutting_down", extra={"service": SERVICE})
    if app.state.scheduler is not None:
        app.state.scheduler.shutdown(wait=False)
    await engine.stop()
    redis_client = app.state.redis_client
    if redis_client is not None:
        await redis_client.aclose()


def create_app() -> FastAPI:
    """Cria e configura a aplicação FastAPI."""
    fastapi_app = FastAPI(
        title="Calendar Sync",
        description="Sincronização bidirecional de agendamentos com o Google Calendar",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    fastapi_app.include_router(create_api_router())

    logger.info("app_configured", extra={"service": SERVICE})

    return fastapi_app


# Aplicação ASGI exposta para uvicorn
app = create_app()


def main() -> None:
    """Entrypoint para execução direta (desenvolvimento)."""
    import uvicorn

    logger.info("Starting calendar sync in development mode")
    uvicorn.run(
        "app.app:app",
        host="0.0.0.0",
        port=8080,
        reload=True,
    )


if __name__ == "__main__":
    main()
