"""`start` pipeline: resolve, probe, route, spawn, then wait for the address."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    UNDEFINED_ADDRESS,
    MessageResponse,
    OperationKind,
    ProvisioningState,
    ProvisioningStatus,
    ResourceKind,
    ResourceRef,
    is_usable_address,
)
from htb_cli.core.interfaces.transport import decode_as
from htb_cli.core.services import routing
from htb_cli.core.services.account import AccountStateProbe
from htb_cli.core.services.provisioning import ProvisioningWaiter, fetch_machine_address
from htb_cli.core.services.resolver import ResourceResolver

logger = logging.getLogger(__name__)

ALREADY_RUNNING_MARKER = "You must stop"


@dataclass
class StartResult:
    ref: ResourceRef
    message: str
    ip: str | None = None
    status: ProvisioningStatus | None = None

    @property
    def timed_out(self) -> bool:
        return self.status is not None and self.status.state is ProvisioningState.TIMED_OUT

    @property
    def interrupted(self) -> bool:
        return self.status is not None and self.status.cancelled

    def text(self) -> str:
        if self.interrupted:
            return f"{self.message}\nInterrupted while waiting for the machine address"
        if self.timed_out:
            return f"{self.message}\nTarget: {UNDEFINED_ADDRESS} (the machine did not get an address in time)"
        if self.ip is None:
            return self.message
        return f"{self.message}\nTarget: {self.ip}"


async def start_machine(ctx: AppContext, name: str | None = None) -> StartResult:
    """Start `name`, or the current release arena machine when no name is given."""

    resolver = ResourceResolver(ctx)
    if name:
        ref = await resolver.resolve(name, ResourceKind.MACHINE)
    else:
        logger.info("Launching the machine in release arena")
        ref = await resolver.resolve_release_arena()

    state = await AccountStateProbe(ctx).probe(ref)
    route = routing.select(OperationKind.START, ref, state)
    logger.info("Start route: %s %s", route.method, route.path)

    document = await ctx.transport.post(route.path, route.payload)
    message = decode_as(MessageResponse, document, url=route.path).message

    if ALREADY_RUNNING_MARKER in message:
        return StartResult(ref=ref, message=message)

    if route.asynchronous:
        status = await ProvisioningWaiter(ctx).wait()
        return StartResult(ref=ref, message=message, ip=status.ip, status=status)

    address = await fetch_machine_address(ctx)
    ip = address if is_usable_address(address) else UNDEFINED_ADDRESS
    return StartResult(ref=ref, message=message, ip=ip)
