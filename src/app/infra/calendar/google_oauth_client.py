"""Renovacao de access token via endpoint OAuth do Google (httpx)."""

from __future__ import annotations

import logging
from datetime import timedelta

import httpx

from app.domain.calendar_connection import utc_now
from app.protocols.token_refresher import (
    InvalidGrantError,
    RefreshedTokens,
    TokenRefresherProtocol,
)
from utils.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

_COMPONENT = "google_oauth_client"
_DEFAULT_EXPIRES_IN = 3600


class GoogleOAuthTokenRefresher(TokenRefresherProtocol):
    """Troca refresh token por access token (grant_type=refresh_token)."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        token_url: str,
        timeout_seconds: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def refresh(self, refresh_token: str) -> RefreshedTokens:
        try:
            response = await self._get_http_client().post(
                self._token_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError("Timeout no endpoint de token OAuth") from exc
        except httpx.TransportError as exc:
            raise ProviderUnavailableError("Falha de rede no endpoint de token OAuth") from exc

        if response.status_code >= 500:
            raise ProviderUnavailableError(
                "Endpoint de token OAuth indisponivel",
                status_code=response.status_code,
            )

        payload = _safe_json(response)
        if response.status_code >= 400:
            error = str(payload.get("error") or "")
            logger.warning(
                "oauth_refresh_rejected",
                extra={
                    "component": _COMPONENT,
                    "action": "refresh",
                    "result": error or "http_error",
                    "status_code": response.status_code,
                },
            )
            if error in {"invalid_grant", "unauthorized_client", "invalid_client"}:
                raise InvalidGrantError(error)
            raise ProviderUnavailableError(
                f"Refresh OAuth recusado: {error or response.status_code}",
                status_code=response.status_code,
            )

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderUnavailableError("Resposta OAuth sem access_token")

        expires_in = int(payload.get("expires_in") or _DEFAULT_EXPIRES_IN)
        new_refresh = payload.get("refresh_token")
        return RefreshedTokens(
            access_token=access_token,
            expires_at=utc_now() + timedelta(seconds=expires_in),
            refresh_token=new_refresh if isinstance(new_refresh, str) and new_refresh else None,
        )


def _safe_json(response: httpx.Response) -> dict[str, object]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
