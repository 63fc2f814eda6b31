"""Rich components for the CLI.

Tables, panels and the spinner used while a machine is provisioning. The
core returns plain models; everything visual is built here.
"""

from __future__ import annotations

from typing import Any, Iterable

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.status import Status
from rich.table import Table
from rich.text import Text

from htb_cli.core.domain.models import CompositeRecord, SearchHit, Unavailable
from htb_cli.core.services.aggregator import display_fields, format_date

_ACTIVITY_LIMIT = 20


def print_banner(console: Console) -> None:
    title = Text("htb-cli", style="bold green")
    subtitle = Text("Hack The Box from the terminal", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="green", padding=(1, 4)))


def build_record_table(record: CompositeRecord) -> Table:
    """One-row table with the kind-specific columns of `record`."""

    fields = display_fields(record)
    table = Table(title=f"{record.ref.kind.label()} information")
    for column, _ in fields:
        table.add_column(column, style="bright_green" if column == "Name" else "white", no_wrap=column == "Name")
    table.add_row(*(value for _, value in fields))
    return table


def _first_list(data: dict[str, Any]) -> list[dict[str, Any]]:
    for value in data.values():
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return []


def build_progress_table(name: str, data: dict[str, Any]) -> Table:
    table = Table(title=name)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Progress", style="green")
    for item in _first_list(data):
        progress = item.get("completion_percentage", item.get("ownership"))
        progress_text = f"{progress}%" if isinstance(progress, (int, float)) else "-"
        table.add_row(str(item.get("name") or "-"), progress_text)
    return table


def build_activity_table(data: dict[str, Any], *, limit: int = _ACTIVITY_LIMIT) -> Table:
    table = Table(title="Activity")
    table.add_column("Date", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Flag", style="magenta")
    table.add_column("Points", style="green", justify="right")
    for item in _first_list(data)[:limit]:
        table.add_row(
            format_date(item.get("date")),
            str(item.get("object_type") or "-"),
            str(item.get("name") or "-"),
            str(item.get("type") or "-"),
            str(item.get("points") if item.get("points") is not None else "-"),
        )
    return table


def build_auxiliary_renderables(record: CompositeRecord) -> list[RenderableType]:
    out: list[RenderableType] = []
    for name, data in record.auxiliary.items():
        if isinstance(data, Unavailable):
            out.append(Text(data.reason, style="red"))
        elif name == "Activity":
            out.append(build_activity_table(data))
        else:
            out.append(build_progress_table(name, data))
    return out


def build_record_view(record: CompositeRecord) -> RenderableType:
    return Group(build_record_table(record), *build_auxiliary_renderables(record))


def build_candidates_table(term: str, candidates: Iterable[object]) -> Table:
    table = Table(title=f"Several results match '{term}'")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    for candidate in candidates:
        if isinstance(candidate, SearchHit):
            table.add_row(str(candidate.id), candidate.name)
        else:
            table.add_row("-", str(candidate))
    return table


class RichStatusIndicator:
    """Spinner shown while waiting; rich refreshes it from its own thread."""

    def __init__(self, console: Console) -> None:
        self._console = console
        self._status: Status | None = None

    def start(self, message: str) -> None:
        self.stop()
        self._status = self._console.status(message, spinner="dots")
        self._status.start()

    def stop(self) -> None:
        status, self._status = self._status, None
        if status is not None:
            status.stop()
