"""Agendamentos no Firestore (colaborador externo; o motor só cria via importação)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from app.domain.appointment import Appointment
from app.infra.stores._firestore_common import run_firestore
from app.protocols.appointment_store import AppointmentStoreProtocol

if TYPE_CHECKING:
    from datetime import datetime

    from google.cloud.firestore import Client as FirestoreClient

logger = logging.getLogger(__name__)


class FirestoreAppointmentStore(AppointmentStoreProtocol):
    """Documentos com `deleted_at` preenchido contam como removidos."""

    def __init__(self, firestore_client: FirestoreClient, collection_name: str) -> None:
        self._db = firestore_client
        self._collection = collection_name

    async def get(self, appointment_id: str) -> Appointment | None:
        def get() -> Appointment | None:
            doc = self._db.collection(self._collection).document(appointment_id).get()
            if not doc.exists:
                return None
            return _parse(doc.id, doc.to_dict() or {})

        return await run_firestore("appointment_get", get)

    async def create(self, appointment: Appointment) -> Appointment:
        data = appointment.model_dump(mode="python", exclude={"id"})
        ref = self._db.collection(self._collection).document(appointment.id)
        await run_firestore("appointment_create", ref.create, data)
        return appointment

    async def delete(self, appointment_id: str) -> None:
        ref = self._db.collection(self._collection).document(appointment_id)
        await run_firestore("appointment_delete", ref.delete)

    async def list_for_owner(
        self,
        owner_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[Appointment]:
        def query() -> list[Appointment]:
            base = self._db.collection(self._collection).where(
                filter=FieldFilter("owner_id", "==", owner_id)
            )
            if start is not None:
                base = base.where(filter=FieldFilter("start_at", ">=", start))
            if end is not None:
                base = base.where(filter=FieldFilter("start_at", "<", end))
            stream = base.order_by("start_at").limit(limit).stream()
            return [a for doc in stream if (a := _parse(doc.id, doc.to_dict() or {}))]

        return await run_firestore("appointment_list_for_owner", query)


def _parse(doc_id: str, data: dict[str, object]) -> Appointment | None:
    if data.get("deleted_at"):
        return None
    try:
        return Appointment.model_validate({"id": doc_id, **data})
    except ValidationError as exc:
        logger.warning(
            "appointment_document_invalid",
            extra={"appointment_id": doc_id, "error_count": exc.error_count()},
        )
        return None
