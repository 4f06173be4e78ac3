"""Contrato de renovação de access token OAuth."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime


class InvalidGrantError(Exception):
    """O provedor recusou o refresh token (revogado ou expirado)."""


@dataclass(frozen=True)
class RefreshedTokens:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None


class TokenRefresherProtocol(Protocol):
    async def refresh(self, refresh_token: str) -> RefreshedTokens:
        """Troca o refresh token por um novo access token.

        Raises:
            InvalidGrantError: refresh token recusado.
            ProviderUnavailableError: falha transitória do endpoint de token.
        """
        ...
