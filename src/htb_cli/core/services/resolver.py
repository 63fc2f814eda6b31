"""Name → identifier resolution.

Machines, challenges and users go through the global search endpoint;
fortresses and prolabs have no search, so their full listings are filtered
locally. Several hits are only accepted when exactly one of them carries the
exact name; otherwise the caller gets the candidates back.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    ActiveMachine,
    ArenaMachine,
    ResourceKind,
    ResourceRef,
    SearchHit,
)
from htb_cli.core.errors import AmbiguousError, NotFoundError, ShapeError, ValidationError
from htb_cli.core.interfaces.transport import decode_as

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search/fetch"
FORTRESSES_PATH = "/fortresses"
PROLABS_PATH = "/prolabs"
ACTIVE_MACHINE_PATH = "/machine/active"
RELEASE_ARENA_PATH = "/season/machine/active"

_SEARCH_TAGS: dict[ResourceKind, str] = {
    ResourceKind.MACHINE: "machines",
    ResourceKind.CHALLENGE: "challenges",
    ResourceKind.USER: "users",
}


def choose_hit(term: str, hits: Iterable[SearchHit], *, kind: ResourceKind | None = None) -> SearchHit:
    """Pick the single hit for `term` or raise NotFound/Ambiguous."""

    unique: dict[str, SearchHit] = {}
    for hit in hits:
        unique.setdefault(str(hit.id), hit)
    candidates = list(unique.values())

    label = kind.value if kind else None
    if not candidates:
        raise NotFoundError(term, label)
    if len(candidates) == 1:
        return candidates[0]

    wanted = term.strip().lower()
    exact = [hit for hit in candidates if hit.name.strip().lower() == wanted]
    if len(exact) == 1:
        return exact[0]
    raise AmbiguousError(term, exact or candidates)


async def fetch_active_machine(ctx: AppContext) -> ActiveMachine | None:
    """Currently running machine, or None when nothing is spawned."""

    info = await ctx.transport.get(ACTIVE_MACHINE_PATH, envelope="info")
    if info is None:
        return None
    return decode_as(ActiveMachine, info, url=ACTIVE_MACHINE_PATH)


async def fetch_release_arena_machine(ctx: AppContext) -> ArenaMachine | None:
    data = await ctx.transport.get(RELEASE_ARENA_PATH, envelope="data")
    if data is None:
        return None
    return decode_as(ArenaMachine, data, url=RELEASE_ARENA_PATH)


class ResourceResolver:
    """Turns names typed by the user into `ResourceRef`s for one command."""

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx

    async def resolve(self, name: str, kind: ResourceKind) -> ResourceRef:
        term = name.strip()
        if not term:
            raise ValidationError(f"A {kind.value} name is required")

        if kind in _SEARCH_TAGS:
            hits = await self._search(term, kind)
        elif kind is ResourceKind.FORTRESS:
            hits = _filter_by_name(term, await self._list_fortresses())
        elif kind is ResourceKind.PROLAB:
            hits = _filter_by_name(term, await self._list_prolabs())
        else:
            raise AssertionError(f"unhandled resource kind: {kind!r}")

        hit = choose_hit(term, hits, kind=kind)
        ref = ResourceRef(kind=kind, id=hit.id, display_name=hit.name)
        logger.info("%s ID: %s", kind.label(), ref.id)
        return ref

    async def resolve_active_machine(self) -> ResourceRef:
        active = await fetch_active_machine(self._ctx)
        if active is None:
            raise NotFoundError("active machine")
        logger.info("Active machine: %s (#%s)", active.name, active.id)
        return active.to_ref()

    async def resolve_release_arena(self) -> ResourceRef:
        arena = await fetch_release_arena_machine(self._ctx)
        if arena is None:
            raise NotFoundError("release arena machine")
        logger.info("Release arena machine: %s (#%s)", arena.name, arena.id)
        return ResourceRef(kind=ResourceKind.MACHINE, id=arena.id, display_name=arena.name)

    async def _search(self, term: str, kind: ResourceKind) -> list[SearchHit]:
        tag = _SEARCH_TAGS[kind]
        document = await self._ctx.transport.get(
            SEARCH_PATH,
            params={"query": term, "tags": json.dumps([tag])},
        )
        if not isinstance(document, dict):
            raise ShapeError("Unexpected search response", url=SEARCH_PATH)
        # Kinds without any match are left out of the response.
        raw = document.get(tag) or []
        if isinstance(raw, dict):
            raw = list(raw.values())
        return [decode_as(SearchHit, item, url=SEARCH_PATH) for item in raw]

    async def _list_fortresses(self) -> list[SearchHit]:
        data = await self._ctx.transport.get(FORTRESSES_PATH, envelope="data")
        return _decode_listing(data, url=FORTRESSES_PATH)

    async def _list_prolabs(self) -> list[SearchHit]:
        data = await self._ctx.transport.get(PROLABS_PATH, envelope="data.labs")
        return _decode_listing(data, url=PROLABS_PATH)


def _decode_listing(data: Any, *, url: str) -> list[SearchHit]:
    if isinstance(data, dict):
        items = list(data.values())
    elif isinstance(data, list):
        items = data
    else:
        raise ShapeError("Unexpected listing format", url=url)
    return [decode_as(SearchHit, item, url=url) for item in items]


def _filter_by_name(term: str, hits: list[SearchHit]) -> list[SearchHit]:
    wanted = term.lower()
    return [hit for hit in hits if wanted in hit.name.lower()]
