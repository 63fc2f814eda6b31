"""Account state needed for routing.

Three reads: subscription tier, active machine, release classification.
Every field is required: any failure aborts the probe.
"""

from __future__ import annotations

import logging

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    AccountState,
    ResourceKind,
    ResourceRef,
    ResourceType,
    SubscriptionTier,
    UserInfo,
)
from htb_cli.core.interfaces.transport import decode_as
from htb_cli.core.services.resolver import fetch_active_machine, fetch_release_arena_machine

logger = logging.getLogger(__name__)

USER_INFO_PATH = "/user/info"


class AccountStateProbe:
    """Reads the account attributes routing depends on. Nothing is cached."""

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx

    async def subscription_tier(self) -> SubscriptionTier:
        info = await self._ctx.transport.get(USER_INFO_PATH, envelope="info")
        tier = decode_as(UserInfo, info, url=USER_INFO_PATH).subscription_tier
        logger.info("User subscription: %s", tier.value)
        return tier

    async def active_resource(self) -> ResourceRef | None:
        active = await fetch_active_machine(self._ctx)
        return active.to_ref() if active else None

    async def resource_type(self, ref: ResourceRef) -> ResourceType:
        """`release` when `ref` is the machine currently served by the release arena."""

        if ref.kind is not ResourceKind.MACHINE:
            return ResourceType.STANDARD
        arena = await fetch_release_arena_machine(self._ctx)
        if arena is not None and str(arena.id) == str(ref.id):
            resource_type = ResourceType.RELEASE
        else:
            resource_type = ResourceType.STANDARD
        logger.info("Machine Type: %s", resource_type.value)
        return resource_type

    async def probe(self, ref: ResourceRef | None = None) -> AccountState:
        tier = await self.subscription_tier()
        active = await self.active_resource()
        resource_type = await self.resource_type(ref) if ref is not None else ResourceType.STANDARD
        return AccountState(
            subscription_tier=tier,
            active_resource=active,
            resource_type=resource_type,
        )
