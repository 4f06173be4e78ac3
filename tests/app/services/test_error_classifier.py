"""Testes da classificação de erros de sincronização."""

from __future__ import annotations

import pytest

from app.services.error_classifier import USER_MESSAGES, classify_error
from utils.errors import (
    CalendarDeletedError,
    CredentialRevokedError,
    FirestoreUnavailableError,
    LockTimeoutError,
    MappingInconsistentError,
    ProviderHttpError,
    ProviderUnavailableError,
    RateLimitExceededError,
)


@pytest.mark.parametrize(
    ("exc", "category", "code"),
    [
        (CredentialRevokedError("c", "revogado"), "fatal", "CREDENTIAL_REVOKED"),
        (CalendarDeletedError("c", "removida"), "fatal", "CALENDAR_DELETED"),
        (MappingInconsistentError("x", details={}), "permanent", "MAPPING_INCONSISTENT"),
        (RateLimitExceededError("429", attempts=5), "transient", "RATE_LIMITED"),
        (ProviderUnavailableError("503", status_code=503), "transient", "PROVIDER_UNAVAILABLE"),
        (LockTimeoutError("lock"), "transient", "LOCK_TIMEOUT"),
        (FirestoreUnavailableError("fs"), "transient", "STORAGE_UNAVAILABLE"),
        (ProviderHttpError(429, "x"), "transient", "RATE_LIMITED"),
        (ProviderHttpError(502, "x"), "transient", "PROVIDER_UNAVAILABLE"),
        (ProviderHttpError(404, "x"), "permanent", "EVENT_NOT_FOUND"),
        (ProviderHttpError(403, "x"), "permanent", "PERMISSION_DENIED"),
        (ProviderHttpError(422, "x"), "permanent", "INVALID_REQUEST"),
        (TimeoutError(), "transient", "TIMEOUT"),
        (ConnectionError("reset"), "transient", "NETWORK_ERROR"),
        (ValueError("bug"), "permanent", "UNKNOWN"),
    ],
)
def test_classification(exc: BaseException, category: str, code: str) -> None:
    classified = classify_error(exc)

    assert classified.category == category
    assert classified.code == code
    assert classified.retryable is (category == "transient")


def test_user_message_never_contains_provider_text() -> None:
    classified = classify_error(ProviderHttpError(400, "Invalid start time: 2026-13-40"))

    assert classified.user_message == USER_MESSAGES["INVALID_REQUEST"]
    assert "2026-13-40" not in classified.user_message
    assert "2026-13-40" in classified.message
