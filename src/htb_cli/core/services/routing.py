"""Endpoint selection for state-dependent operations.

Decision table, first match wins:

start
  1. release machine       -> POST /arena/start         {}            (async)
  2. vip / vip+ account    -> POST /vm/spawn            {machine_id}  (async for vip+)
  3. free account          -> POST /machine/play/<id>   {}
own
  1. release machine       -> POST /arena/own           {id}
  2. anything else         -> POST /machine/own         {id}

Release machines are shared arena instances, so they ignore the tier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from htb_cli.core.domain.models import (
    AccountState,
    OperationKind,
    ResourceRef,
    ResourceType,
    SubscriptionTier,
)


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    payload: dict[str, Any] = field(default_factory=dict)
    asynchronous: bool = False


def select(op: OperationKind, ref: ResourceRef, state: AccountState) -> Route:
    if op is OperationKind.START:
        return _select_start(ref, state)
    if op is OperationKind.OWN:
        return _select_own(ref, state)
    raise AssertionError(f"unhandled operation: {op!r}")


def _select_start(ref: ResourceRef, state: AccountState) -> Route:
    if state.resource_type is ResourceType.RELEASE:
        return Route("POST", "/arena/start", {}, asynchronous=True)

    tier = state.subscription_tier
    if tier in (SubscriptionTier.VIP, SubscriptionTier.VIP_PLUS):
        return Route(
            "POST",
            "/vm/spawn",
            {"machine_id": ref.id},
            asynchronous=tier is SubscriptionTier.VIP_PLUS,
        )
    if tier is SubscriptionTier.FREE:
        return Route("POST", f"/machine/play/{ref.id}", {})
    raise AssertionError(f"unhandled subscription tier: {tier!r}")


def _select_own(ref: ResourceRef, state: AccountState) -> Route:
    if state.resource_type is ResourceType.RELEASE:
        return Route("POST", "/arena/own", {"id": ref.id})
    if state.resource_type is ResourceType.STANDARD:
        return Route("POST", "/machine/own", {"id": ref.id})
    raise AssertionError(f"unhandled resource type: {state.resource_type!r}")
