"""Importação de eventos do Google Calendar como agendamentos.

Fluxo em duas etapas, acionado pelo operador:

- preview: lista os eventos de uma janela, ignora os já vinculados, valida
  cada um e procura agendamentos prováveis duplicados. Não grava nada.
- confirm: para os eventos escolhidos, cria o agendamento no store externo,
  grava o mapeamento com direção `pull` e registra `import` no log de
  auditoria. Cada evento é isolado; a falha de um não interrompe os demais.

A detecção de duplicados pontua a proximidade de horário e a coincidência
de contato (e-mail, telefone) e de título. Abaixo de CONFIDENCE_LOW o
agendamento nem é considerado; a partir de CONFIDENCE_MEDIUM o evento
deixa de ser importável por padrão.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from app.domain.appointment import Appointment
from app.domain.calendar_connection import utc_now
from app.domain.sync_records import EventMapping
from app.services.error_classifier import classify_error
from utils.errors import (
    ConnectionFatalError,
    InfrastructureError,
    MappingInconsistentError,
    ProviderHttpError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from app.domain.calendar_connection import CalendarConnection
    from app.domain.calendar_event import ExternalEvent
    from app.protocols.appointment_store import AppointmentStoreProtocol
    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.event_mapping_store import EventMappingStoreProtocol
    from app.services.calendar_api_client import RateLimitedCalendarClient
    from app.services.sync_logger import SyncLogger

logger = logging.getLogger(__name__)

_COMPONENT = "calendar_import"

T = TypeVar("T")

CONFIDENCE_HIGH = 80
CONFIDENCE_MEDIUM = 60
CONFIDENCE_LOW = 40

OVERLAP_TOLERANCE = timedelta(minutes=30)
MIN_DURATION = timedelta(minutes=15)
MAX_DURATION = timedelta(hours=8)
MAX_AGE = timedelta(days=365)
MAX_AHEAD = timedelta(days=365)
MAX_PREVIEW_EVENTS = 100

# Status que ainda ocupam o horário; os demais não contam como duplicado.
_DUPLICATE_STATUSES = frozenset({"pending", "confirmed", "checked_in", "in_progress"})

_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_LABEL_RE = re.compile(
    r"(?:telefone|tel|celular|whatsapp|phone|mobile):\s*([0-9+ ().-]+)", re.I
)
_PHONE_RE = re.compile(r"\(?\+?\d{2,3}\)?[\s.-]?\d{4,5}[\s.-]?\d{4}")
_NAME_RE = re.compile(r"(?:cliente|nome|customer|client):\s*([^\n,;|]+)", re.I)

_RECOVERABLE = (
    InfrastructureError,
    ProviderHttpError,
    MappingInconsistentError,
    TimeoutError,
    ConnectionError,
)

ImportStatus = Literal["imported", "skipped", "failed"]


@dataclass(frozen=True)
class ContactInfo:
    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ParsedEvent:
    external_event_id: str
    title: str
    start: datetime | None
    end: datetime | None
    description: str = ""
    location: str = ""
    contact: ContactInfo = field(default_factory=ContactInfo)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "location": self.location,
            "customer": {
                "name": self.contact.name,
                "email": self.contact.email,
                "phone": self.contact.phone,
            },
        }


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class DuplicateMatch:
    appointment_id: str
    confidence: int
    reasons: tuple[str, ...]

    @property
    def likely(self) -> bool:
        return self.confidence >= CONFIDENCE_MEDIUM

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointment_id": self.appointment_id,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class ImportCandidate:
    parsed: ParsedEvent
    validation: ValidationResult
    duplicate: DuplicateMatch | None

    @property
    def importable(self) -> bool:
        return self.validation.valid and (self.duplicate is None or not self.duplicate.likely)

    def to_dict(self) -> dict[str, Any]:
        return {
            "external_event_id": self.parsed.external_event_id,
            "parsed": self.parsed.to_dict(),
            "validation": {
                "valid": self.validation.valid,
                "errors": list(self.validation.errors),
                "warnings": list(self.validation.warnings),
            },
            "duplicate_match": self.duplicate.to_dict() if self.duplicate else None,
            "importable": self.importable,
        }


@dataclass
class ImportPreview:
    connection_id: str
    candidates: list[ImportCandidate] = field(default_factory=list)
    already_imported: int = 0

    @property
    def importable(self) -> int:
        return sum(1 for c in self.candidates if c.importable)

    @property
    def duplicates(self) -> int:
        return sum(
            1 for c in self.candidates if c.validation.valid and c.duplicate and c.duplicate.likely
        )

    @property
    def invalid(self) -> int:
        return sum(1 for c in self.candidates if not c.validation.valid)


@dataclass(frozen=True)
class ImportItemResult:
    external_event_id: str
    status: ImportStatus
    appointment_id: str | None = None
    reason: str | None = None
    error_code: str | None = None


@dataclass
class ImportConfirmResult:
    connection_id: str
    results: list[ImportItemResult] = field(default_factory=list)
    duration_ms: int = 0

    def _count(self, status: ImportStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def imported(self) -> int:
        return self._count("imported")

    @property
    def skipped(self) -> int:
        return self._count("skipped")

    @property
    def failed(self) -> int:
        return self._count("failed")


# Extração e validação


def extract_contact(text: str) -> ContactInfo:
    """Procura nome, e-mail e telefone em texto livre (descrição do evento)."""
    if not text:
        return ContactInfo()
    email_match = _EMAIL_RE.search(text)
    phone_match = _PHONE_LABEL_RE.search(text) or _PHONE_RE.search(text)
    phone_raw = phone_match.group(phone_match.lastindex or 0) if phone_match else ""
    phone = _digits(phone_raw) or None
    name_match = _NAME_RE.search(text)
    return ContactInfo(
        name=name_match.group(1).strip() if name_match else None,
        email=email_match.group(0).lower() if email_match else None,
        phone=phone if phone and len(phone) >= 8 else None,
    )


def parse_external_event(event: ExternalEvent) -> ParsedEvent:
    return ParsedEvent(
        external_event_id=event.event_id,
        title=event.summary.strip(),
        start=event.start,
        end=event.end,
        description=event.description,
        location=event.location,
        contact=extract_contact(event.description),
    )


def validate_for_import(parsed: ParsedEvent, *, now: datetime) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not parsed.title:
        errors.append("Evento sem título")
    if parsed.start is None:
        errors.append("Evento sem horário de início")
    if parsed.end is None:
        errors.append("Evento sem horário de término")

    if parsed.start is not None and parsed.end is not None:
        duration = parsed.end - parsed.start
        if duration <= timedelta(0):
            errors.append("Início do evento deve ser anterior ao término")
        elif duration < MIN_DURATION:
            errors.append(f"Duração de {_minutes(duration)} min abaixo do mínimo de 15 min")
        elif duration > MAX_DURATION:
            errors.append(f"Duração de {_minutes(duration)} min acima do máximo de 480 min")
        if parsed.start < now - MAX_AGE:
            errors.append("Evento com mais de 365 dias no passado")
        elif parsed.start > now + MAX_AHEAD:
            errors.append("Evento a mais de 365 dias no futuro")
        elif parsed.start < now:
            warnings.append("Evento no passado")

    if not (parsed.contact.email or parsed.contact.phone):
        warnings.append("Nenhum e-mail ou telefone encontrado; vínculo com cliente será manual")
    if not parsed.contact.name:
        warnings.append("Nome do cliente não encontrado")

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


# Detecção de duplicados


def score_duplicate(parsed: ParsedEvent, appointment: Appointment) -> DuplicateMatch | None:
    """Pontua o quanto `appointment` parece ser o mesmo compromisso do evento.

    Retorna None quando os horários não se sobrepõem (com tolerância) ou a
    pontuação fica abaixo de CONFIDENCE_LOW.
    """
    if parsed.start is None or parsed.end is None:
        return None
    if not _overlaps(parsed.start, parsed.end, appointment.start_at, appointment.end_at):
        return None

    confidence = 0
    reasons: list[str] = []

    diff = abs(parsed.start - appointment.start_at)
    if diff <= timedelta(minutes=5):
        confidence += 40
        reasons.append("Mesmo horário")
    elif diff <= timedelta(minutes=15):
        confidence += 30
        reasons.append(f"Horário próximo ({_minutes(diff)} min)")
    elif diff <= OVERLAP_TOLERANCE:
        confidence += 20
        reasons.append(f"Horário parecido ({_minutes(diff)} min)")
    else:
        confidence += 10
        reasons.append("Mesma janela de horário")

    known = extract_contact(appointment.description)
    if parsed.contact.email and parsed.contact.email == known.email:
        confidence += 30
        reasons.append("E-mail coincide")
    if parsed.contact.phone and known.phone and _same_phone(parsed.contact.phone, known.phone):
        confidence += 25
        reasons.append("Telefone coincide")
    if parsed.contact.name and known.name:
        if _normalize(parsed.contact.name) == _normalize(known.name):
            confidence += 15
            reasons.append("Nome do cliente coincide")
        elif names_similar(parsed.contact.name, known.name):
            confidence += 10
            reasons.append("Nome do cliente parecido")

    if parsed.title:
        if _normalize(parsed.title) == _normalize(appointment.title):
            confidence += 15
            reasons.append("Título coincide")
        elif names_similar(parsed.title, appointment.title):
            confidence += 10
            reasons.append("Título parecido")

    confidence = min(confidence, 100)
    if confidence < CONFIDENCE_LOW:
        return None
    return DuplicateMatch(appointment.id, confidence, tuple(reasons))


def find_duplicate(parsed: ParsedEvent, appointments: list[Appointment]) -> DuplicateMatch | None:
    """Melhor candidato entre os agendamentos que ainda ocupam horário."""
    matches = [
        match
        for appointment in appointments
        if appointment.status in _DUPLICATE_STATUSES
        and (match := score_duplicate(parsed, appointment)) is not None
    ]
    return max(matches, key=lambda m: m.confidence, default=None)


def names_similar(first: str, second: str) -> bool:
    """Igual, contido no outro ou com ao menos 70% de caracteres em comum."""
    a, b = _normalize(first), _normalize(second)
    if not a or not b:
        return False
    if a == b or a in b or b in a:
        return True
    common = sum((Counter(a) & Counter(b)).values())
    return common / min(len(a), len(b)) >= 0.7


def _overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return (start - OVERLAP_TOLERANCE) < other_end and (end + OVERLAP_TOLERANCE) > other_start


def _same_phone(first: str, second: str) -> bool:
    # Compara os 8 dígitos finais: DDI/DDD costumam variar entre fontes.
    return first[-8:] == second[-8:]


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def _minutes(delta: timedelta) -> int:
    return round(delta.total_seconds() / 60)


# Serviço


class CalendarImportService:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        mapping_store: EventMappingStoreProtocol,
        appointment_store: AppointmentStoreProtocol,
        api: RateLimitedCalendarClient,
        sync_logger: SyncLogger,
        max_preview_events: int = MAX_PREVIEW_EVENTS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections = connection_store
        self._mappings = mapping_store
        self._appointments = appointment_store
        self._api = api
        self._sync_logger = sync_logger
        self._max_preview_events = max_preview_events
        self._clock = clock

    async def preview(
        self, connection_id: str, *, time_min: datetime, time_max: datetime
    ) -> ImportPreview | None:
        """Classifica os eventos da janela sem gravar nada.

        Returns:
            None se a conexão não existir ou estiver inativa.
        """
        connection = await self._active_connection(connection_id)
        if connection is None:
            return None

        events = await self._call_provider(
            connection,
            self._api.list_events_in_window(connection, time_min=time_min, time_max=time_max),
        )
        preview = ImportPreview(connection_id=connection.id)
        now = self._clock()
        for event in events[: self._max_preview_events]:
            if await self._mappings.find_by_external_id(connection.id, event.event_id):
                preview.already_imported += 1
                continue
            preview.candidates.append(await self._evaluate(connection, event, now))

        logger.info(
            "calendar_import_preview",
            extra={
                "component": _COMPONENT,
                "connection_id": connection.id,
                "listed": len(events),
                "candidates": len(preview.candidates),
                "importable": preview.importable,
                "duplicates": preview.duplicates,
                "invalid": preview.invalid,
            },
        )
        return preview

    async def confirm(
        self,
        connection_id: str,
        external_event_ids: list[str],
        *,
        skip_duplicates: bool = True,
    ) -> ImportConfirmResult | None:
        """Importa os eventos escolhidos, um a um.

        Erros fatais da conexão desativam a conexão e interrompem a
        importação; os demais viram resultado `failed` do item.
        """
        connection = await self._active_connection(connection_id)
        if connection is None:
            return None

        started = time.monotonic()
        result = ImportConfirmResult(connection_id=connection.id)
        for external_event_id in dict.fromkeys(external_event_ids):
            item_started = time.monotonic()
            try:
                item = await self._import_one(connection, external_event_id, skip_duplicates)
            except _RECOVERABLE as exc:
                classified = classify_error(exc)
                item = ImportItemResult(
                    external_event_id,
                    "failed",
                    reason=classified.user_message,
                    error_code=classified.code,
                )
                logger.warning(
                    "calendar_import_item_failed",
                    extra={
                        "component": _COMPONENT,
                        "connection_id": connection.id,
                        "external_event_id": external_event_id,
                        "error_code": classified.code,
                        "error_type": type(exc).__name__,
                    },
                )
            if item.status == "failed":
                await self._sync_logger.record(
                    operation="import",
                    sync_type="pull",
                    status="failed",
                    connection_id=connection.id,
                    external_event_id=external_event_id,
                    error_code=item.error_code,
                    error_message=item.reason,
                    duration_ms=(time.monotonic() - item_started) * 1000,
                )
            result.results.append(item)

        result.duration_ms = round((time.monotonic() - started) * 1000)
        logger.info(
            "calendar_import_confirmed",
            extra={
                "component": _COMPONENT,
                "connection_id": connection.id,
                "imported": result.imported,
                "skipped": result.skipped,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    async def _import_one(
        self, connection: CalendarConnection, external_event_id: str, skip_duplicates: bool
    ) -> ImportItemResult:
        existing = await self._mappings.find_by_external_id(connection.id, external_event_id)
        if existing is not None:
            return ImportItemResult(
                external_event_id,
                "skipped",
                appointment_id=existing.appointment_id,
                reason="already_imported",
            )

        event = await self._call_provider(
            connection, self._api.get_event(connection, external_event_id)
        )
        if event is None or event.is_cancelled:
            return ImportItemResult(
                external_event_id,
                "failed",
                reason="Evento não encontrado no Google Calendar",
                error_code="EVENT_NOT_FOUND",
            )

        now = self._clock()
        candidate = await self._evaluate(connection, event, now)
        if not candidate.validation.valid:
            return ImportItemResult(
                external_event_id,
                "failed",
                reason="; ".join(candidate.validation.errors),
                error_code="INVALID_EVENT",
            )
        duplicate = candidate.duplicate
        if skip_duplicates and duplicate is not None and duplicate.likely:
            return ImportItemResult(
                external_event_id,
                "skipped",
                appointment_id=duplicate.appointment_id,
                reason=f"duplicate ({duplicate.confidence}%)",
            )

        parsed = candidate.parsed
        appointment = Appointment(
            id=uuid.uuid4().hex,
            owner_id=connection.owner_id,
            title=parsed.title,
            description=parsed.description,
            location=parsed.location,
            start_at=parsed.start,  # type: ignore[arg-type]
            end_at=parsed.end,  # type: ignore[arg-type]
            status="pending",
            updated_at=now,
        )
        # Mapeamento antes do agendamento: a unicidade do evento externo
        # barra importações concorrentes do mesmo evento.
        mapping = await self._mappings.create(
            EventMapping(
                appointment_id=appointment.id,
                connection_id=connection.id,
                external_event_id=external_event_id,
                last_synced_at=now,
                sync_direction="pull",
            )
        )
        try:
            await self._appointments.create(appointment)
        except _RECOVERABLE:
            await self._mappings.delete(mapping.id)
            raise

        await self._sync_logger.record(
            operation="import",
            sync_type="pull",
            status="success",
            connection_id=connection.id,
            appointment_id=appointment.id,
            external_event_id=external_event_id,
            details={
                "duplicate_confidence": duplicate.confidence if duplicate else 0,
                "warnings": len(candidate.validation.warnings),
            },
        )
        return ImportItemResult(external_event_id, "imported", appointment_id=appointment.id)

    async def _evaluate(
        self, connection: CalendarConnection, event: ExternalEvent, now: datetime
    ) -> ImportCandidate:
        parsed = parse_external_event(event)
        validation = validate_for_import(parsed, now=now)
        duplicate = None
        if validation.valid and parsed.start is not None and parsed.end is not None:
            nearby = await self._appointments.list_for_owner(
                connection.owner_id,
                start=parsed.start - OVERLAP_TOLERANCE,
                end=parsed.end + OVERLAP_TOLERANCE,
            )
            duplicate = find_duplicate(parsed, nearby)
        return ImportCandidate(parsed=parsed, validation=validation, duplicate=duplicate)

    async def _active_connection(self, connection_id: str) -> CalendarConnection | None:
        connection = await self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            return None
        return connection

    async def _call_provider(self, connection: CalendarConnection, call: Awaitable[T]) -> T:
        try:
            return await call
        except ConnectionFatalError as exc:
            await self._connections.deactivate(connection.id, exc.error_code.lower())
            await self._sync_logger.record(
                operation="deactivate",
                sync_type="pull",
                status="failed",
                connection_id=connection.id,
                error_code=exc.error_code,
                error_message=classify_error(exc).user_message,
            )
            logger.warning(
                "connection_deactivated",
                extra={
                    "component": _COMPONENT,
                    "connection_id": connection.id,
                    "error_code": exc.error_code,
                },
            )
            raise


__all__ = [
    "CONFIDENCE_HIGH",
    "CONFIDENCE_LOW",
    "CONFIDENCE_MEDIUM",
    "CalendarImportService",
    "ContactInfo",
    "DuplicateMatch",
    "ImportCandidate",
    "ImportConfirmResult",
    "ImportItemResult",
    "ImportPreview",
    "ParsedEvent",
    "ValidationResult",
    "extract_contact",
    "find_duplicate",
    "names_similar",
    "parse_external_event",
    "score_duplicate",
    "validate_for_import",
]
