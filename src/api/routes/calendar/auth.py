"""Autenticação das rotas de jobs (cron) e de operação (painel)."""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from fastapi import status
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from fastapi import Request

    from app.bootstrap.dependencies import CalendarSyncEngine

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> CalendarSyncEngine:
    return request.app.state.calendar_engine


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value:
        return None
    return value.strip()


def _matches(provided: str | None, expected: str) -> bool:
    return provided is not None and hmac.compare_digest(provided, expected)


def _rejection(request: Request, kind: str, reason: str, code: int) -> JSONResponse:
    logger.warning(
        "calendar_auth_rejected",
        extra={"component": "calendar_api", "auth": kind, "reason": reason, "path": request.url.path},
    )
    return JSONResponse(content={"error": "unauthorized"}, status_code=code)


def check_cron_secret(request: Request) -> JSONResponse | None:
    """None se autorizado; aceita Bearer ou ?secret=."""
    expected = get_engine(request).settings.cron_secret
    if not expected:
        return _rejection(request, "cron", "not_configured", status.HTTP_503_SERVICE_UNAVAILABLE)
    provided = _bearer_token(request) or request.query_params.get("secret")
    if not _matches(provided, expected):
        return _rejection(request, "cron", "invalid_secret", status.HTTP_401_UNAUTHORIZED)
    return None


def check_admin_token(request: Request) -> JSONResponse | None:
    """None se autorizado (Bearer com o token de operação)."""
    expected = get_engine(request).settings.admin_token
    if not expected:
        return _rejection(request, "admin", "not_configured", status.HTTP_503_SERVICE_UNAVAILABLE)
    if not _matches(_bearer_token(request), expected):
        return _rejection(request, "admin", "invalid_token", status.HTTP_401_UNAUTHORIZED)
    return None
