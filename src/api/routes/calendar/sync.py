"""Endpoints de operação da sincronização (painel do operador).

- POST /calendar/sync/bulk: reconciliação em lote num intervalo de datas
- GET  /calendar/sync/status: saúde por conexão
- POST /calendar/sync/appointments/{appointment_id}/resync: recria o evento
- POST /calendar/connections/{connection_id}/resume: retoma sync pausado
- POST /calendar/import/preview: eventos do Google candidatos à importação
- POST /calendar/import/confirm: importa os eventos escolhidos como agendamentos

Todas exigem o token de operação (Bearer).
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from api.routes.calendar.auth import check_admin_token, get_engine
from app.services.error_classifier import classify_error
from utils.errors import ConnectionFatalError, InfrastructureError, ProviderHttpError

logger = logging.getLogger(__name__)

router = APIRouter()


class BulkSyncRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    connection_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    force: bool = False

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


async def _read_bulk_request(request: Request) -> BulkSyncRequest:
    raw = await request.body()
    if not raw.strip():
        return BulkSyncRequest()
    return BulkSyncRequest.model_validate(json.loads(raw))


@router.post("/sync/bulk")
async def bulk_sync(request: Request) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    try:
        payload = await _read_bulk_request(request)
    except (ValueError, ValidationError):
        return JSONResponse(
            content={"error": "invalid_request"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    if payload.start and payload.end and payload.end <= payload.start:
        return JSONResponse(
            content={"error": "invalid_range"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    result = await get_engine(request).bulk_sync.run(
        connection_id=payload.connection_id,
        start=payload.start,
        end=payload.end,
        force=payload.force,
    )
    return JSONResponse(
        content={
            "total": result.total,
            "successful": result.successful,
            "failed": result.failed,
            "skipped": result.skipped,
            "duration_ms": result.duration_ms,
            "errors": result.errors,
        }
    )


@router.get("/sync/status")
async def sync_status(request: Request) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    health_service = get_engine(request).health
    connection_id = request.query_params.get("connection_id")
    if connection_id:
        health = await health_service.connection_health(connection_id)
        if health is None:
            return JSONResponse(
                content={"error": "connection_not_found"},
                status_code=status.HTTP_404_NOT_FOUND,
            )
        connections = [health]
    else:
        connections = await health_service.all_active()

    return JSONResponse(
        content={
            "connections": [health.to_dict() for health in connections],
            "generated_at": datetime.now(UTC).isoformat(),
        }
    )


@router.post("/sync/appointments/{appointment_id}/resync")
async def resync_appointment(request: Request, appointment_id: str) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    outcome = await get_engine(request).processor.resync_appointment(appointment_id)
    if outcome.reason == "no_active_connection":
        return JSONResponse(
            content={"error": "no_active_connection"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return JSONResponse(
        content={
            "appointment_id": appointment_id,
            "action": outcome.action,
            "external_event_id": outcome.external_event_id,
            "error_code": outcome.error_code,
            "error": outcome.error_message,
            "queued_for_retry": outcome.enqueued,
        },
        status_code=status.HTTP_200_OK if not outcome.failed else status.HTTP_502_BAD_GATEWAY,
    )


@router.post("/connections/{connection_id}/resume")
async def resume_connection(request: Request, connection_id: str) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    connections = get_engine(request).stores.connections
    connection = await connections.get(connection_id)
    if connection is None:
        return JSONResponse(
            content={"error": "connection_not_found"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    if not connection.is_active:
        return JSONResponse(
            content={"error": "connection_inactive"},
            status_code=status.HTTP_409_CONFLICT,
        )

    await connections.resume(connection_id)
    logger.info(
        "calendar_connection_resumed",
        extra={"component": "calendar_api", "connection_id": connection_id},
    )
    return JSONResponse(content={"connection_id": connection_id, "auto_sync_paused": False})


class ImportPreviewRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    connection_id: str
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class ImportConfirmRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    connection_id: str
    event_ids: list[str]
    skip_duplicates: bool = True


def _provider_failure(exc: Exception) -> JSONResponse:
    classified = classify_error(exc)
    code = (
        status.HTTP_409_CONFLICT
        if isinstance(exc, ConnectionFatalError)
        else status.HTTP_502_BAD_GATEWAY
    )
    return JSONResponse(
        content={"error": classified.user_message, "error_code": classified.code},
        status_code=code,
    )


@router.post("/import/preview")
async def import_preview(request: Request) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    try:
        payload = ImportPreviewRequest.model_validate(json.loads(await request.body()))
    except (ValueError, ValidationError):
        return JSONResponse(
            content={"error": "invalid_request"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    if payload.end <= payload.start:
        return JSONResponse(
            content={"error": "invalid_range"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    try:
        preview = await get_engine(request).importer.preview(
            payload.connection_id, time_min=payload.start, time_max=payload.end
        )
    except (ConnectionFatalError, InfrastructureError, ProviderHttpError) as exc:
        return _provider_failure(exc)
    if preview is None:
        return JSONResponse(
            content={"error": "no_active_connection"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return JSONResponse(
        content={
            "connection_id": preview.connection_id,
            "events": [candidate.to_dict() for candidate in preview.candidates],
            "summary": {
                "total": len(preview.candidates),
                "importable": preview.importable,
                "duplicates": preview.duplicates,
                "invalid": preview.invalid,
                "already_imported": preview.already_imported,
            },
        }
    )


@router.post("/import/confirm")
async def import_confirm(request: Request) -> JSONResponse:
    rejected = check_admin_token(request)
    if rejected is not None:
        return rejected

    try:
        payload = ImportConfirmRequest.model_validate(json.loads(await request.body()))
    except (ValueError, ValidationError):
        return JSONResponse(
            content={"error": "invalid_request"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    if not payload.event_ids:
        return JSONResponse(
            content={"error": "no_events_selected"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    try:
        result = await get_engine(request).importer.confirm(
            payload.connection_id,
            payload.event_ids,
            skip_duplicates=payload.skip_duplicates,
        )
    except ConnectionFatalError as exc:
        return _provider_failure(exc)
    if result is None:
        return JSONResponse(
            content={"error": "no_active_connection"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return JSONResponse(
        content={
            "connection_id": result.connection_id,
            "results": [
                {
                    "external_event_id": item.external_event_id,
                    "status": item.status,
                    "appointment_id": item.appointment_id,
                    "reason": item.reason,
                    "error_code": item.error_code,
                }
                for item in result.results
            ],
            "summary": {
                "imported": result.imported,
                "skipped": result.skipped,
                "failed": result.failed,
            },
            "duration_ms": result.duration_ms,
        }
    )
