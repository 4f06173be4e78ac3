"""Agregador de rotas.

Uso:
    from api.routes import create_api_router

    app = FastAPI()
    app.include_router(create_api_router())
"""

from __future__ import annotations

from fastapi import APIRouter

from api.routes.calendar.router import router as calendar_router
from api.routes.calendar.webhook import router as calendar_webhook_router
from api.routes.health.router import router as health_router


def create_api_router() -> APIRouter:
    """Cria router principal com todos os sub-routers registrados."""
    api_router = APIRouter()

    # Health checks (sem prefixo para /health e /ready na raiz)
    api_router.include_router(health_router, tags=["health"])

    # Notificações push do Google
    api_router.include_router(
        calendar_webhook_router,
        prefix="/webhook",
        tags=["calendar-webhook"],
    )

    # Jobs de cron e operação
    api_router.include_router(calendar_router, prefix="/calendar", tags=["calendar"])

    return api_router
