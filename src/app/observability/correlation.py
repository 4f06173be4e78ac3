"""Contexto de rastreamento (correlation_id e connection_id).

Usa ContextVar para ser async-safe: cada job do pool de workers roda com
seu próprio contexto, então os logs de conexões diferentes não se misturam.

Uso:
    token = set_correlation_id(request.headers.get("x-correlation-id"))
    try:
        ...
    finally:
        reset_correlation_id(token)
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_connection_id: ContextVar[str] = ContextVar("connection_id", default="")


def get_correlation_id() -> str:
    """Retorna o correlation_id do contexto atual (ou string vazia)."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> Token[str]:
    """Define o correlation_id; gera um UUID quando None."""
    value = correlation_id or str(uuid.uuid4())
    return _correlation_id.set(value)


def reset_correlation_id(token: Token[str]) -> None:
    _correlation_id.reset(token)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_connection_id() -> str:
    """Retorna a conexão de agenda associada ao contexto atual."""
    return _connection_id.get()


def set_connection_id(connection_id: str) -> Token[str]:
    return _connection_id.set(connection_id)


def reset_connection_id(token: Token[str]) -> None:
    _connection_id.reset(token)
