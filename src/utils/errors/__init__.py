"""Exceções utilitárias compartilhadas."""

from .exceptions import (
    CalendarDeletedError,
    ConnectionFatalError,
    CredentialRevokedError,
    FirestoreUnavailableError,
    InfrastructureError,
    LockTimeoutError,
    MappingInconsistentError,
    ProviderHttpError,
    ProviderUnavailableError,
    RateLimitExceededError,
    RedisConnectionError,
)

__all__ = [
    "CalendarDeletedError",
    "ConnectionFatalError",
    "CredentialRevokedError",
    "FirestoreUnavailableError",
    "InfrastructureError",
    "LockTimeoutError",
    "MappingInconsistentError",
    "ProviderHttpError",
    "ProviderUnavailableError",
    "RateLimitExceededError",
    "RedisConnectionError",
]
