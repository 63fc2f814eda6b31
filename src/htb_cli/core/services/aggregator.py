"""Composite detail records for `info`.

One required primary query per subject plus a fixed list of optional
auxiliary queries, run concurrently. A failing auxiliary query is recorded as
`Unavailable` and never aborts the record. The fields shown for a record
depend only on its kind, not on which auxiliary queries succeeded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    UNDEFINED_ADDRESS,
    CompositeRecord,
    ResourceKind,
    ResourceRef,
    Unavailable,
)
from htb_cli.core.errors import ShapeError, TransportError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetailSource:
    """An endpoint returning one JSON object wrapped in `envelope`."""

    name: str
    path: str
    envelope: str

    def url_for(self, ref: ResourceRef) -> str:
        return self.path.format(id=ref.id)


PRIMARY_SOURCES: dict[ResourceKind, DetailSource] = {
    ResourceKind.MACHINE: DetailSource("Machine", "/machine/profile/{id}", "info"),
    ResourceKind.CHALLENGE: DetailSource("Challenge", "/challenge/info/{id}", "challenge"),
    ResourceKind.USER: DetailSource("User", "/user/profile/basic/{id}", "profile"),
}

AUXILIARY_SOURCES: dict[ResourceKind, tuple[DetailSource, ...]] = {
    ResourceKind.MACHINE: (),
    ResourceKind.CHALLENGE: (),
    ResourceKind.USER: (
        DetailSource("Fortresses", "/user/profile/progress/fortress/{id}", "profile"),
        DetailSource("Endgames", "/user/profile/progress/endgame/{id}", "profile"),
        DetailSource("Prolabs", "/user/profile/progress/prolab/{id}", "profile"),
        DetailSource("Activity", "/user/profile/activity/{id}", "profile"),
    ),
}


class Aggregator:
    """Builds a `CompositeRecord`: required primary query, tolerated auxiliary ones."""

    def __init__(
        self,
        ctx: AppContext,
        *,
        auxiliary_sources: dict[ResourceKind, tuple[DetailSource, ...]] | None = None,
    ) -> None:
        self._ctx = ctx
        self._auxiliary = AUXILIARY_SOURCES if auxiliary_sources is None else auxiliary_sources

    async def aggregate(self, ref: ResourceRef) -> CompositeRecord:
        primary_source = PRIMARY_SOURCES.get(ref.kind)
        if primary_source is None:
            raise ValidationError(f"No detailed information is available for a {ref.kind.value}")

        primary = await self._fetch(primary_source, ref)
        sources = self._auxiliary.get(ref.kind, ())
        # gather keeps the input order, so the record follows the declared order.
        results = await asyncio.gather(*(self._safe_fetch(source, ref) for source in sources))
        auxiliary = {source.name: result for source, result in zip(sources, results)}

        return CompositeRecord(ref=ref, primary=primary, auxiliary=auxiliary)

    async def _fetch(self, source: DetailSource, ref: ResourceRef) -> dict[str, Any]:
        url = source.url_for(ref)
        data = await self._ctx.transport.get(url, envelope=source.envelope)
        if not isinstance(data, dict):
            raise ShapeError(f"Expected an object in '{source.envelope}'", url=url)
        return data

    async def _safe_fetch(self, source: DetailSource, ref: ResourceRef) -> dict[str, Any] | Unavailable:
        try:
            return await self._fetch(source, ref)
        except (TransportError, ShapeError) as exc:
            logger.warning("Error fetching data for %s: %s", source.name, exc)
            return Unavailable(reason=f"unavailable for {source.name}: {exc}")


# Display -------------------------------------------------------------------

MACHINE_COLUMNS = ("Name", "OS", "Retired", "Difficulty", "Stars", "IP", "Status", "Last Reset", "Release")
CHALLENGE_COLUMNS = ("Name", "Category", "Retired", "Difficulty", "Stars", "Solves", "Status", "Release")
USER_COLUMNS = (
    "Name",
    "User Owns",
    "System Owns",
    "User Bloods",
    "System Bloods",
    "Team",
    "University",
    "Rank",
    "Global Rank",
    "Points",
)


def format_date(value: object) -> str:
    """`2017-03-14T19:00:00.000000Z` -> `14 March 2017`; anything unparsable is returned as text."""

    if not isinstance(value, str) or not value.strip():
        return "-"
    raw = value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return value
    return parsed.strftime("%d %B %Y")


def retired_status(data: dict[str, Any]) -> str:
    return "Yes" if data.get("retired") else "No"


def ownership_status(data: dict[str, Any]) -> str:
    status: list[str] = []
    if data.get("authUserInUserOwns"):
        status.append("User flag")
    if data.get("authUserInRootOwns"):
        status.append("Root flag")
    if data.get("authUserSolve"):
        status.append("Challenge solved")
    return ", ".join(status) or "No flags"


def _text(value: object) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, dict):
        return str(value.get("name") or "-")
    return str(value)


def display_fields(record: CompositeRecord) -> list[tuple[str, str]]:
    """Ordered (column, value) pairs for the record's kind."""

    data = record.primary
    kind = record.ref.kind
    if kind is ResourceKind.MACHINE:
        ip = data.get("ip") or UNDEFINED_ADDRESS
        values = [
            data.get("name"),
            data.get("os"),
            retired_status(data),
            data.get("difficultyText"),
            data.get("stars"),
            ip,
            ownership_status(data),
            data.get("last_reset_time"),
            format_date(data.get("release")),
        ]
        return list(zip(MACHINE_COLUMNS, map(_text, values)))
    if kind is ResourceKind.CHALLENGE:
        values = [
            data.get("name"),
            data.get("category_name"),
            retired_status(data),
            data.get("difficulty"),
            data.get("stars"),
            data.get("solves"),
            ownership_status(data),
            format_date(data.get("release_date")),
        ]
        return list(zip(CHALLENGE_COLUMNS, map(_text, values)))
    if kind is ResourceKind.USER:
        values = [
            data.get("name"),
            data.get("user_owns"),
            data.get("system_owns"),
            data.get("user_bloods"),
            data.get("system_bloods"),
            data.get("team"),
            data.get("university"),
            data.get("rank"),
            data.get("ranking"),
            data.get("points"),
        ]
        return list(zip(USER_COLUMNS, map(_text, values)))
    raise ValidationError(f"No display fields for a {kind.value}")
