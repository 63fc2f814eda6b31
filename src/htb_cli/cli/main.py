"""htb-cli command line.

Commands: `start`, `info`, `submit`, `update` and the `doctor` group. Each
command builds one `AppContext`, runs a single coroutine and renders the
result; errors from the core are printed and turned into exit code 1.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console

from htb_cli import __version__
from htb_cli.adapters.http_client import HTBTransport
from htb_cli.adapters.ticker import AsyncTicker, cancel_on_interrupt
from htb_cli.adapters.update_check import check_for_update
from htb_cli.adapters.webhooks import send_to_discord
from htb_cli.cli import doctor
from htb_cli.cli.logging_setup import configure_logging
from htb_cli.cli.ui_components import (
    RichStatusIndicator,
    build_candidates_table,
    build_record_view,
)
from htb_cli.core.config import AppSettings
from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    AlreadyOwnedResult,
    ResourceKind,
    ResourceRef,
    SubmissionMode,
    UserCancelled,
)
from htb_cli.core.errors import AmbiguousError, HTBError
from htb_cli.core.services.aggregator import Aggregator
from htb_cli.core.services.machine_start import start_machine
from htb_cli.core.services.resolver import ResourceResolver, fetch_active_machine
from htb_cli.core.services.submission import SubmissionDispatcher

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, help="Interact with Hack The Box from the command line.")
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)


def build_transport(settings: AppSettings) -> HTBTransport:
    return HTBTransport.from_settings(settings)


def ask_confirmation(question: str, *, assume_yes: bool = False) -> bool:
    if assume_yes:
        return True
    return typer.confirm(question, default=True)


def read_secret(prompt: str) -> str:
    return typer.prompt(prompt, hide_input=True)


def _make_ticker(interval_seconds: float) -> AsyncTicker:
    return cancel_on_interrupt(AsyncTicker(interval_seconds))


@asynccontextmanager
async def open_context(settings: AppSettings) -> AsyncIterator[AppContext]:
    async with build_transport(settings) as transport:
        yield AppContext(
            settings=settings,
            transport=transport,
            make_ticker=_make_ticker,
            indicator=RichStatusIndicator(_err_console),
            confirm=lambda question: ask_confirmation(question, assume_yes=settings.assume_yes),
            read_secret=read_secret,
        )


def _settings(ctx: typer.Context) -> AppSettings:
    settings = ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()
    if not settings.api_token:
        _err_console.print(
            "[red]No API token configured.[/red] Set HTB_CLI_API_TOKEN or run `htb-cli doctor setup-token`."
        )
        raise typer.Exit(code=1)
    return settings


def _run(settings: AppSettings, job: Callable[[AppContext], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with open_context(settings) as app_ctx:
            return await job(app_ctx)

    try:
        return asyncio.run(runner())
    except AmbiguousError as exc:
        _console.print(build_candidates_table(exc.term, exc.candidates))
        _err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except HTBError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        _err_console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=130) from None


def _notify(settings: AppSettings, command: str, message: str) -> None:
    if settings.discord_webhook_url:
        asyncio.run(send_to_discord(settings=settings, command=command, message=message))


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"htb-cli {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show informational logs."),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs (requests, polling)."),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="HTTP proxy for every request."),
    batch: bool = typer.Option(False, "--batch", "-b", help="Do not ask for confirmation."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    configure_logging(verbose=verbose, debug=debug, console=_err_console)
    overrides: dict[str, object] = {}
    if proxy:
        overrides["proxy"] = proxy
    if batch:
        overrides["assume_yes"] = True
    ctx.obj = AppSettings(**overrides)


@app.command()
def start(
    ctx: typer.Context,
    machine: Optional[str] = typer.Option(
        None,
        "--machine",
        "-m",
        help="Machine name (defaults to the release arena machine).",
    ),
) -> None:
    """Start a machine and wait for its IP address."""

    settings = _settings(ctx)
    result = _run(settings, lambda app_ctx: start_machine(app_ctx, machine))
    output = result.text()
    _console.print(output)
    if not result.interrupted:
        _notify(settings, "start", output)


async def _collect_records(
    app_ctx: AppContext,
    targets: list[tuple[str, ResourceKind]],
    *,
    check_active: bool,
) -> tuple[list[object], list[str]]:
    resolver = ResourceResolver(app_ctx)
    aggregator = Aggregator(app_ctx)
    views: list[object] = []
    errors: list[str] = []

    if check_active and app_ctx.confirm("Do you want to check for active machine?"):
        active = await fetch_active_machine(app_ctx)
        if active is None:
            views.append("No machine is running")
        else:
            views.append(build_record_view(await aggregator.aggregate(active.to_ref())))

    for name, kind in targets:
        try:
            ref: ResourceRef = await resolver.resolve(name, kind)
            record = await aggregator.aggregate(ref)
        except AmbiguousError as exc:
            views.append(build_candidates_table(exc.term, exc.candidates))
            errors.append(str(exc))
            continue
        except HTBError as exc:
            errors.append(str(exc))
            continue
        views.append(build_record_view(record))
    return views, errors


@app.command()
def info(
    ctx: typer.Context,
    machine: List[str] = typer.Option([], "--machine", "-m", help="Machine name (repeatable)."),
    challenge: List[str] = typer.Option([], "--challenge", "-c", help="Challenge name (repeatable)."),
    username: List[str] = typer.Option([], "--username", "-u", help="Username (repeatable)."),
) -> None:
    """Detailed information on machines, challenges and users."""

    settings = _settings(ctx)
    targets = (
        [(name, ResourceKind.MACHINE) for name in machine]
        + [(name, ResourceKind.CHALLENGE) for name in challenge]
        + [(name, ResourceKind.USER) for name in username]
    )
    # Machine lookups also offer the running machine, as does a bare `info`.
    check_active = not targets or bool(machine)
    views, errors = _run(
        settings,
        lambda app_ctx: _collect_records(app_ctx, targets, check_active=check_active),
    )
    for view in views:
        _console.print(view)
    for error in errors:
        _err_console.print(f"[red]Error:[/red] {error}")
    if errors:
        raise typer.Exit(code=1)


def _submission_mode(
    challenge: Optional[str],
    machine: Optional[str],
    fortress: Optional[str],
    prolab: Optional[str],
) -> tuple[SubmissionMode, Optional[str]]:
    chosen = [
        (mode, value)
        for mode, value in (
            (SubmissionMode.CHALLENGE, challenge),
            (SubmissionMode.MACHINE, machine),
            (SubmissionMode.FORTRESS, fortress),
            (SubmissionMode.PROLAB, prolab),
        )
        if value
    ]
    if len(chosen) > 1:
        raise typer.BadParameter("Only one of --challenge, --machine, --fortress or --prolab can be used")
    if not chosen:
        return SubmissionMode.ACTIVE, None
    return chosen[0]


@app.command()
def submit(
    ctx: typer.Context,
    challenge: Optional[str] = typer.Option(None, "--challenge", "-c", help="Challenge name."),
    machine: Optional[str] = typer.Option(None, "--machine", "-m", help="Machine name."),
    fortress: Optional[str] = typer.Option(None, "--fortress", "-f", help="Fortress name."),
    prolab: Optional[str] = typer.Option(None, "--prolab", "-p", help="Prolab name."),
    difficulty: Optional[int] = typer.Option(
        None,
        "--difficulty",
        "-d",
        help="Difficulty rating between 1 and 10 (challenges only).",
    ),
) -> None:
    """Submit a flag. Without a target, the flag goes to the active machine."""

    mode, target = _submission_mode(challenge, machine, fortress, prolab)
    if difficulty is not None and mode is not SubmissionMode.CHALLENGE:
        raise typer.BadParameter("--difficulty only applies to challenges")
    settings = _settings(ctx)

    async def job(app_ctx: AppContext) -> tuple[str, bool]:
        dispatcher = SubmissionDispatcher(app_ctx)
        outcome = await dispatcher.dispatch(mode, target, difficulty=difficulty)
        if isinstance(outcome, AlreadyOwnedResult):
            return outcome.message, False
        if isinstance(outcome, UserCancelled):
            return outcome.reason, False
        return await dispatcher.submit(outcome), True

    message, submitted = _run(settings, job)
    _console.print(message)
    if submitted:
        _notify(settings, "submit", message)


@app.command()
def update(ctx: typer.Context) -> None:
    """Check whether a newer release is available."""

    settings = ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()
    try:
        status = asyncio.run(check_for_update(settings=settings, current_version=__version__))
    except HTBError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    if status.up_to_date:
        _console.print(f"You're up to date ! ({status.current})")
    else:
        _console.print(f"A new update is now available ! ({status.latest})")
        _console.print("Update with : pip install --upgrade htb-cli")


def run() -> None:
    app()
