"""Exceções compartilhadas do motor de sincronização.

Taxonomia:
- InfrastructureError e subclasses: transitórias (vão para a fila de retry)
- ConnectionFatalError e subclasses: fatais para a conexão (desativa, sem retry)
- MappingInconsistentError: integridade de dados (registra e pula)
- ProviderHttpError: resposta HTTP de erro do provedor, já normalizada
"""

from __future__ import annotations

from typing import Any


class InfrastructureError(RuntimeError):
    """Base para falhas de infraestrutura transitórias."""


class RedisConnectionError(InfrastructureError):
    """Falha de conexão/timeout ao acessar Redis."""


class FirestoreUnavailableError(InfrastructureError):
    """Falha de indisponibilidade ao acessar Firestore."""


class ProviderUnavailableError(InfrastructureError):
    """Google Calendar indisponível (5xx, timeout, rede) após esgotar tentativas."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceededError(InfrastructureError):
    """429 persistente após esgotar o teto de tentativas."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class LockTimeoutError(InfrastructureError):
    """Lock por agendamento não obtido dentro do prazo."""


class ConnectionFatalError(RuntimeError):
    """Base para falhas que invalidam a conexão de agenda."""

    error_code = "CONNECTION_FATAL"

    def __init__(self, connection_id: str, message: str) -> None:
        super().__init__(message)
        self.connection_id = connection_id


class CredentialRevokedError(ConnectionFatalError):
    """Acesso revogado, refresh token inválido ou tokens ilegíveis."""

    error_code = "CREDENTIAL_REVOKED"


class CalendarDeletedError(ConnectionFatalError):
    """A agenda externa não existe mais."""

    error_code = "CALENDAR_DELETED"


class MappingInconsistentError(RuntimeError):
    """Mapeamentos agendamento/evento contraditórios; exige inspeção manual."""

    error_code = "MAPPING_INCONSISTENT"

    def __init__(self, message: str, *, details: dict[str, Any]) -> None:
        super().__init__(message)
        self.details = details


class ProviderHttpError(RuntimeError):
    """Erro HTTP devolvido pela API do Google Calendar.

    Attributes:
        status_code: Status HTTP.
        reason: Motivo do erro no corpo da resposta (ex.: "rateLimitExceeded").
    """

    def __init__(self, status_code: int, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
