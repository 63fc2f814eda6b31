"""Discord notifications.

Sent after `start` and `submit` when `HTB_CLI_DISCORD_WEBHOOK_URL` is set.
A failed notification is logged and reported as False, never raised.
"""

from __future__ import annotations

import logging

import httpx

from htb_cli.adapters.http_client import build_async_client
from htb_cli.core.config import AppSettings

logger = logging.getLogger(__name__)

# Discord rejects messages longer than this.
_MAX_CONTENT = 2000


def format_notification(command: str, message: str) -> str:
    content = f"**htb-cli {command}**\n{message.strip()}"
    if len(content) > _MAX_CONTENT:
        content = content[: _MAX_CONTENT - 1] + "…"
    return content


async def send_to_discord(
    *,
    settings: AppSettings,
    command: str,
    message: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    if not settings.discord_webhook_url:
        return False

    payload = {"content": format_notification(command, message)}
    try:
        async with build_async_client(settings, authenticated=False, transport=transport) as client:
            response = await client.post(settings.discord_webhook_url, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Discord notification failed: %s", exc)
        return False
    logger.info("Discord notification sent for %s", command)
    return True
