"""httpx wrapper for the labs API.

- `build_async_client` standardises timeouts, headers, proxy and auth.
- `HTBTransport` implements `LabTransport`: it maps network/HTTP failures to
  `TransportError`, undecodable bodies to `ShapeError`, and unwraps the
  response envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from htb_cli.core.config import AppSettings
from htb_cli.core.errors import ShapeError, TransportError
from htb_cli.core.interfaces.transport import extract_envelope

logger = logging.getLogger(__name__)


def build_async_client(
    settings: AppSettings | None = None,
    *,
    authenticated: bool = True,
    base_url: str | None = None,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with the CLI defaults.

    The bearer token is only attached when `authenticated` is true, so the
    same builder can be used for third-party hosts (webhooks, GitHub).
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if authenticated and settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    if extra_headers:
        headers.update(extra_headers)

    kwargs: dict[str, Any] = {
        "timeout": httpx.Timeout(settings.http_timeout_seconds),
        "follow_redirects": True,
        "headers": headers,
    }
    if base_url is not None:
        kwargs["base_url"] = base_url
    if transport is not None:
        kwargs["transport"] = transport
    elif settings.proxy:
        kwargs["proxy"] = settings.proxy
    return httpx.AsyncClient(**kwargs)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or ""
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.reason_phrase or ""


class HTBTransport:
    """`LabTransport` over an `httpx.AsyncClient` rooted at the API base URL."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HTBTransport":
        client = build_async_client(settings, base_url=settings.api_base_url, transport=transport)
        return cls(client)

    async def __aenter__(self) -> "HTBTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        envelope: str | None = None,
    ) -> Any:
        return await self._request("GET", path, params=params, envelope=envelope)

    async def post(
        self,
        path: str,
        payload: Mapping[str, Any] | None = None,
        *,
        envelope: str | None = None,
    ) -> Any:
        return await self._request("POST", path, json=dict(payload or {}), envelope=envelope)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        envelope: str | None = None,
    ) -> Any:
        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}", url=path) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            if response.status_code == 401:
                detail = f"{detail} (check HTB_CLI_API_TOKEN)".strip()
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
                url=path,
            )

        try:
            document = response.json()
        except ValueError as exc:
            raise ShapeError("Response is not valid JSON", url=path) from exc
        return extract_envelope(document, envelope, url=path)
