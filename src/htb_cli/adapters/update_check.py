"""Latest-release lookup on GitHub."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from htb_cli.adapters.http_client import build_async_client
from htb_cli.core.config import AppSettings
from htb_cli.core.errors import ShapeError, TransportError

RELEASES_URL = "https://api.github.com/repos/GoToolSharing/htb-cli/releases/latest"


@dataclass(frozen=True)
class UpdateStatus:
    current: str
    latest: str

    @property
    def up_to_date(self) -> bool:
        return self.latest.lstrip("v") == self.current.lstrip("v")


async def check_for_update(
    *,
    settings: AppSettings,
    current_version: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> UpdateStatus:
    headers = {"Accept": "application/vnd.github+json"}
    try:
        async with build_async_client(
            settings,
            authenticated=False,
            extra_headers=headers,
            transport=transport,
        ) as client:
            response = await client.get(RELEASES_URL)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        raise TransportError(f"Could not reach GitHub: {exc}", url=RELEASES_URL) from exc
    except ValueError as exc:
        raise ShapeError("GitHub answered with invalid JSON", url=RELEASES_URL) from exc

    tag = data.get("tag_name") if isinstance(data, dict) else None
    if not isinstance(tag, str) or not tag:
        raise ShapeError("Release has no tag_name", url=RELEASES_URL)
    return UpdateStatus(current=current_version, latest=tag)
