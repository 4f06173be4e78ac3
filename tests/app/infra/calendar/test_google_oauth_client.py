"""Testes do GoogleOAuthTokenRefresher com httpx.MockTransport."""

from __future__ import annotations

from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from app.domain.calendar_connection import utc_now
from app.infra.calendar.google_oauth_client import GoogleOAuthTokenRefresher
from app.protocols.token_refresher import InvalidGrantError
from utils.errors import ProviderUnavailableError

TOKEN_URL = "https://oauth2.googleapis.com/token"


def _refresher(handler: httpx.MockTransport) -> GoogleOAuthTokenRefresher:
    return GoogleOAuthTokenRefresher(
        client_id="client-id",
        client_secret="client-secret",
        token_url=TOKEN_URL,
        http_client=httpx.AsyncClient(transport=handler),
    )


@pytest.mark.asyncio
async def test_refresh_posts_grant_and_parses_tokens() -> None:
    seen: dict[str, list[str]] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"access_token": "ya29.novo", "expires_in": 1800})

    refresher = _refresher(httpx.MockTransport(handler))
    before = utc_now()

    tokens = await refresher.refresh("refresh-1")
    await refresher.aclose()

    assert seen["grant_type"] == ["refresh_token"]
    assert seen["refresh_token"] == ["refresh-1"]
    assert tokens.access_token == "ya29.novo"
    assert tokens.refresh_token is None
    assert before + timedelta(seconds=1800) <= tokens.expires_at <= utc_now() + timedelta(seconds=1800)


@pytest.mark.asyncio
async def test_rotated_refresh_token_is_returned() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "a", "refresh_token": "refresh-2"})

    tokens = await _refresher(httpx.MockTransport(handler)).refresh("refresh-1")

    assert tokens.refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_invalid_grant_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(InvalidGrantError):
        await _refresher(httpx.MockTransport(handler)).refresh("revogado")


@pytest.mark.asyncio
async def test_server_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(ProviderUnavailableError) as exc_info:
        await _refresher(httpx.MockTransport(handler)).refresh("refresh-1")

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timeout", request=request)

    with pytest.raises(ProviderUnavailableError, match="Timeout"):
        await _refresher(httpx.MockTransport(handler)).refresh("refresh-1")


@pytest.mark.asyncio
async def test_response_without_access_token_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"expires_in": 3600})

    with pytest.raises(ProviderUnavailableError, match="access_token"):
        await _refresher(httpx.MockTransport(handler)).refresh("refresh-1")
