"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from htb_cli.adapters.http_client import HTBTransport
from htb_cli.cli.ui_components import print_banner
from htb_cli.core.config import AppSettings, get_user_env_file, write_user_env_vars
from htb_cli.core.domain.models import UserInfo
from htb_cli.core.errors import HTBError
from htb_cli.core.interfaces.transport import decode_as
from htb_cli.core.services.account import USER_INFO_PATH

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_api(settings: AppSettings) -> tuple[bool, str]:
    try:
        async with HTBTransport.from_settings(settings) as transport:
            info = await transport.get(USER_INFO_PATH, envelope="info")
        user = decode_as(UserInfo, info, url=USER_INFO_PATH)
    except HTBError as exc:
        return False, str(exc)
    return True, f"Logged in as {user.name or '?'} ({user.subscription_tier.value})"


@app.command()
def run(ctx: typer.Context) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()
    print_banner(_console)

    table = Table(title="htb-cli Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("API token", "OK" if settings.api_token else "MISSING", str(get_user_env_file()))
    table.add_row("API base URL", "OK", settings.api_base_url)
    table.add_row("Proxy", "OK" if settings.proxy else "OPTIONAL", settings.proxy or "none")
    table.add_row(
        "Discord webhook",
        "OK" if settings.discord_webhook_url else "OPTIONAL",
        "notifications enabled" if settings.discord_webhook_url else "no notifications",
    )

    ok_api = False
    if settings.api_token:
        ok_api, detail_api = asyncio.run(_check_api(settings))
        table.add_row("API access", "OK" if ok_api else "FAIL", detail_api)

    _console.print(table)

    if not settings.api_token:
        _console.print("\n[yellow]Note:[/yellow] run `htb-cli doctor setup-token` to store your API token.")
    elif not ok_api:
        raise typer.Exit(code=1)


@app.command(name="setup-token")
def setup_token() -> None:
    """Store the API token in the user config .env."""

    token = typer.prompt("API token", hide_input=True, confirmation_prompt=False).strip()
    if not token:
        raise typer.BadParameter("the API token cannot be empty")

    env_path = write_user_env_vars({"HTB_CLI_API_TOKEN": token})
    _console.print(f"[green]Saved API token to:[/green] {env_path}")
