"""Classificação de erros de sincronização.

Traduz qualquer exceção em categoria (transient|permanent|fatal), código
estável e mensagem para o operador. O operador nunca vê o erro bruto do
provedor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from utils.errors import (
    CalendarDeletedError,
    CredentialRevokedError,
    InfrastructureError,
    LockTimeoutError,
    MappingInconsistentError,
    ProviderHttpError,
    ProviderUnavailableError,
    RateLimitExceededError,
)

ErrorCategory = Literal["transient", "permanent", "fatal"]

TRANSIENT_HTTP_CODES = frozenset({408, 429, 500, 502, 503, 504})
PERMANENT_HTTP_CODES = frozenset({400, 401, 403, 404, 405, 409, 410, 422})

USER_MESSAGES: dict[str, str] = {
    "CREDENTIAL_REVOKED": "O acesso à agenda foi revogado. Reconecte sua conta Google.",
    "CALENDAR_DELETED": "A agenda conectada não existe mais. Reconecte sua conta Google.",
    "RATE_LIMITED": "O Google limitou temporariamente as requisições. Tentaremos novamente.",
    "PROVIDER_UNAVAILABLE": "O Google Calendar está indisponível no momento. Tentaremos novamente.",
    "TIMEOUT": "O Google Calendar demorou para responder. Tentaremos novamente.",
    "NETWORK_ERROR": "Falha de rede ao falar com o Google Calendar. Tentaremos novamente.",
    "LOCK_TIMEOUT": "Outra sincronização do mesmo agendamento estava em andamento.",
    "STORAGE_UNAVAILABLE": "Falha temporária ao salvar dados de sincronização.",
    "MAPPING_INCONSISTENT": "Vínculo inconsistente entre agendamento e evento; requer revisão.",
    "INVALID_REQUEST": "O Google recusou os dados do evento; revise o agendamento.",
    "EVENT_NOT_FOUND": "O evento não foi encontrado no Google Calendar.",
    "PERMISSION_DENIED": "Sem permissão para alterar esta agenda. Verifique a conexão.",
    "RETRY_LIMIT_EXCEEDED": "A sincronização falhou repetidamente e precisa de atenção.",
    "UNKNOWN": "Erro inesperado na sincronização.",
}


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    code: str
    message: str
    status_code: int | None = None

    @property
    def retryable(self) -> bool:
        return self.category == "transient"

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, USER_MESSAGES["UNKNOWN"])


def classify_error(exc: BaseException) -> ClassifiedError:
    message = str(exc) or type(exc).__name__

    if isinstance(exc, CredentialRevokedError):
        return ClassifiedError("fatal", "CREDENTIAL_REVOKED", message)
    if isinstance(exc, CalendarDeletedError):
        return ClassifiedError("fatal", "CALENDAR_DELETED", message)
    if isinstance(exc, MappingInconsistentError):
        return ClassifiedError("permanent", "MAPPING_INCONSISTENT", message)
    if isinstance(exc, RateLimitExceededError):
        return ClassifiedError("transient", "RATE_LIMITED", message, 429)
    if isinstance(exc, ProviderUnavailableError):
        return ClassifiedError("transient", "PROVIDER_UNAVAILABLE", message, exc.status_code)
    if isinstance(exc, LockTimeoutError):
        return ClassifiedError("transient", "LOCK_TIMEOUT", message)
    if isinstance(exc, InfrastructureError):
        return ClassifiedError("transient", "STORAGE_UNAVAILABLE", message)
    if isinstance(exc, ProviderHttpError):
        return _classify_http(exc.status_code, message)
    if isinstance(exc, TimeoutError):
        return ClassifiedError("transient", "TIMEOUT", message)
    if isinstance(exc, ConnectionError):
        return ClassifiedError("transient", "NETWORK_ERROR", message)
    return ClassifiedError("permanent", "UNKNOWN", message)


def _classify_http(status_code: int, message: str) -> ClassifiedError:
    if status_code == 429:
        return ClassifiedError("transient", "RATE_LIMITED", message, status_code)
    if status_code in TRANSIENT_HTTP_CODES:
        return ClassifiedError("transient", "PROVIDER_UNAVAILABLE", message, status_code)
    if status_code in {404, 410}:
        return ClassifiedError("permanent", "EVENT_NOT_FOUND", message, status_code)
    if status_code in {401, 403}:
        return ClassifiedError("permanent", "PERMISSION_DENIED", message, status_code)
    if status_code in PERMANENT_HTTP_CODES:
        return ClassifiedError("permanent", "INVALID_REQUEST", message, status_code)
    if status_code >= 500:
        return ClassifiedError("transient", "PROVIDER_UNAVAILABLE", message, status_code)
    return ClassifiedError("permanent", "UNKNOWN", message, status_code)
