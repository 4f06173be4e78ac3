"""Cofre de credenciais OAuth por conexão.

Tokens ficam cifrados na CalendarConnection. A renovação (refresh + gravação)
é atômica por conexão: lock local por conexão e compare-and-set no store
pela `token_version`, para que duas instâncias não gravem um token velho.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from app.domain.calendar_connection import utc_now
from app.protocols.crypto import TokenDecryptionError
from app.protocols.token_refresher import InvalidGrantError
from app.services.keyed_lock import KeyedLock
from utils.errors import CredentialRevokedError

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from app.protocols.connection_store import ConnectionStoreProtocol
    from app.protocols.crypto import TokenCipherProtocol
    from app.protocols.token_refresher import TokenRefresherProtocol

logger = logging.getLogger(__name__)

_COMPONENT = "credential_vault"
_MAX_STORE_ATTEMPTS = 3


@dataclass(frozen=True)
class StoredTokens:
    access_token: str
    refresh_token: str
    expiry: datetime
    version: int


class CredentialVault:
    def __init__(
        self,
        *,
        connection_store: ConnectionStoreProtocol,
        cipher: TokenCipherProtocol,
        refresher: TokenRefresherProtocol,
        refresh_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._connections = connection_store
        self._cipher = cipher
        self._refresher = refresher
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._locks = KeyedLock()

    def encrypt(self, token: str) -> str:
        """Cifra um token para gravação inicial da conexão (consentimento OAuth)."""
        return self._cipher.encrypt(token)

    async def store(
        self,
        connection_id: str,
        access_token: str,
        refresh_token: str,
        expiry: datetime,
    ) -> None:
        """Grava novos tokens; repete o compare-and-set se outra escrita vencer."""
        async with self._locks.hold(connection_id):
            for _ in range(_MAX_STORE_ATTEMPTS):
                connection = await self._connections.get(connection_id)
                if connection is None:
                    raise LookupError(f"Conexão inexistente: {connection_id}")
                written = await self._connections.compare_and_set_tokens(
                    connection_id,
                    expected_version=connection.token_version,
                    access_token_encrypted=self._cipher.encrypt(access_token),
                    refresh_token_encrypted=self._cipher.encrypt(refresh_token),
                    token_expiry=expiry,
                )
                if written:
                    return
        raise RuntimeError(f"Conflito persistente ao gravar tokens de {connection_id}")

    async def retrieve(self, connection_id: str) -> StoredTokens:
        connection = await self._connections.get(connection_id)
        if connection is None or not connection.is_active:
            raise CredentialRevokedError(connection_id, "Conexão inexistente ou inativa")
        try:
            return StoredTokens(
                access_token=self._cipher.decrypt(connection.access_token_encrypted),
                refresh_token=self._cipher.decrypt(connection.refresh_token_encrypted),
                expiry=connection.token_expiry,
                version=connection.token_version,
            )
        except TokenDecryptionError as exc:
            await self._revoke(connection_id, "token_decryption_failed")
            raise CredentialRevokedError(connection_id, "Tokens armazenados ilegíveis") from exc

    async def get_valid_access_token(self, connection_id: str) -> str:
        """Retorna access token válido, renovando se expira dentro da margem."""
        tokens = await self.retrieve(connection_id)
        if not self._needs_refresh(tokens):
            return tokens.access_token

        async with self._locks.hold(connection_id):
            # Outra corrotina pode ter renovado enquanto esperávamos o lock.
            tokens = await self.retrieve(connection_id)
            if not self._needs_refresh(tokens):
                return tokens.access_token

            try:
                refreshed = await self._refresher.refresh(tokens.refresh_token)
            except InvalidGrantError as exc:
                await self._revoke(connection_id, "invalid_grant")
                raise CredentialRevokedError(connection_id, "Refresh token recusado") from exc

            written = await self._connections.compare_and_set_tokens(
                connection_id,
                expected_version=tokens.version,
                access_token_encrypted=self._cipher.encrypt(refreshed.access_token),
                refresh_token_encrypted=self._cipher.encrypt(
                    refreshed.refresh_token or tokens.refresh_token
                ),
                token_expiry=refreshed.expires_at,
            )
            if not written:
                # Outra instância renovou primeiro; a versão gravada vale.
                logger.info(
                    "token_refresh_superseded",
                    extra={"component": _COMPONENT, "connection_id": connection_id},
                )
                return (await self.retrieve(connection_id)).access_token

            logger.info(
                "token_refreshed",
                extra={
                    "component": _COMPONENT,
                    "action": "refresh",
                    "result": "ok",
                    "connection_id": connection_id,
                },
            )
            return refreshed.access_token

    def _needs_refresh(self, tokens: StoredTokens) -> bool:
        return tokens.expiry <= self._clock() + self._refresh_margin

    async def _revoke(self, connection_id: str, reason: str) -> None:
        await self._connections.deactivate(connection_id, reason)
        logger.warning(
            "connection_credentials_revoked",
            extra={
                "component": _COMPONENT,
                "action": "deactivate",
                "result": reason,
                "connection_id": connection_id,
            },
        )
