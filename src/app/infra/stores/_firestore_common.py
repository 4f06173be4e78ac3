"""Helpers compartilhados pelos stores Firestore.

O SDK Python do Firestore é síncrono: as chamadas rodam em thread via
asyncio.to_thread e falhas transitórias viram FirestoreUnavailableError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from google.api_core import exceptions as gexc
from pydantic import BaseModel

from utils.errors import FirestoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_TRANSIENT_ERRORS = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
    gexc.TooManyRequests,
    gexc.Aborted,
)


async def run_firestore(action: str, call: Callable[..., T], *args: Any) -> T:
    try:
        return await asyncio.to_thread(call, *args)
    except _TRANSIENT_ERRORS as exc:
        logger.warning(
            "firestore_unavailable",
            extra={"action": action, "error_type": type(exc).__name__},
        )
        raise FirestoreUnavailableError(f"Firestore indisponível em {action}") from exc


def to_document(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="python")


def from_document(model_cls: type[M], data: dict[str, Any] | None) -> M | None:
    if not data:
        return None
    return model_cls.model_validate(data)
