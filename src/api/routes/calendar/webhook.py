"""Endpoint de notificações push do Google Calendar.

POST /webhook/google-calendar

O Google só manda headers X-Goog-*; o corpo vem vazio. Qualquer request
estruturalmente válido recebe 200, mesmo de canal desconhecido, para o
Google não entrar em retry agressivo. O processamento vai para o pool
de workers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.routes.calendar.auth import get_engine
from app.domain.calendar_event import WebhookNotification
from app.observability import reset_correlation_id, set_correlation_id
from utils.errors import InfrastructureError

logger = logging.getLogger(__name__)

router = APIRouter()

VALID_RESOURCE_STATES = frozenset({"sync", "exists", "not_exists"})


def _parse_message_number(raw: str | None) -> int | None:
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


@router.post("/google-calendar")
async def receive_calendar_notification(request: Request) -> JSONResponse:
    token = set_correlation_id(request.headers.get("x-correlation-id"))
    try:
        channel_id = request.headers.get("x-goog-channel-id")
        resource_state = request.headers.get("x-goog-resource-state")
        if not channel_id or not resource_state:
            logger.warning(
                "calendar_webhook_missing_headers",
                extra={"component": "calendar_webhook", "result": "bad_request"},
            )
            return JSONResponse(
                content={"error": "missing_headers"},
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        if resource_state not in VALID_RESOURCE_STATES:
            logger.info(
                "calendar_webhook_unknown_state",
                extra={"component": "calendar_webhook", "resource_state": resource_state},
            )
            return JSONResponse(content={"status": "ignored"})

        try:
            notification = WebhookNotification(
                channel_id=channel_id,
                resource_state=resource_state,  # type: ignore[arg-type]
                resource_id=request.headers.get("x-goog-resource-id"),
                message_number=_parse_message_number(request.headers.get("x-goog-message-number")),
                channel_token=request.headers.get("x-goog-channel-token"),
            )
        except ValidationError:
            return JSONResponse(content={"status": "ignored"})

        try:
            result = await get_engine(request).ingress.handle(notification)
        except InfrastructureError as exc:
            # Já recebido; o Google não deve ver erro. A varredura de retry/renovação recupera.
            logger.error(
                "calendar_webhook_ingress_failed",
                extra={
                    "component": "calendar_webhook",
                    "error_type": type(exc).__name__,
                    "result": "error",
                },
            )
            return JSONResponse(content={"status": "error"})

        return JSONResponse(content={"status": result.status})
    finally:
        reset_correlation_id(token)
