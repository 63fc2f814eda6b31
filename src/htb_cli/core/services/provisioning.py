"""Wait for a started machine to get an address.

State machine::

    pending --(poll returns a usable address)--> ready
    pending --(elapsed >= timeout, or ticker cancelled)--> timed_out

Timing comes from the injected ticker and clock, so tests run without real
delays. A timeout is an expected outcome and is returned, not raised.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator

from htb_cli.core.context import AppContext
from htb_cli.core.domain.models import (
    MachineProfile,
    ProvisioningState,
    ProvisioningStatus,
    is_usable_address,
)
from htb_cli.core.interfaces.polling import ProgressIndicator, Ticker
from htb_cli.core.interfaces.transport import decode_as
from htb_cli.core.services.resolver import fetch_active_machine

logger = logging.getLogger(__name__)

WAIT_MESSAGE = "Waiting for the machine to start in order to fetch the IP address (this might take a while)."

AddressProbe = Callable[[], Awaitable[str | None]]


async def fetch_machine_address(ctx: AppContext) -> str | None:
    """Address of the active machine, re-read from its profile. None while not assigned."""

    active = await fetch_active_machine(ctx)
    if active is None:
        return None
    path = f"/machine/profile/{active.id}"
    info = await ctx.transport.get(path, envelope="info")
    return decode_as(MachineProfile, info, url=path).ip


@contextmanager
def _indicator_scope(indicator: ProgressIndicator, message: str) -> Iterator[None]:
    try:
        indicator.start(message)
    except Exception as exc:
        logger.debug("Progress indicator failed to start: %s", exc)
    try:
        yield
    finally:
        try:
            indicator.stop()
        except Exception as exc:
            logger.debug("Progress indicator failed to stop: %s", exc)


class ProvisioningWaiter:
    def __init__(
        self,
        ctx: AppContext,
        *,
        probe: AddressProbe | None = None,
        ticker: Ticker | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._ctx = ctx
        self._probe = probe or (lambda: fetch_machine_address(ctx))
        self._ticker = ticker or ctx.make_ticker(ctx.settings.poll_interval_seconds)
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else ctx.settings.provisioning_timeout_seconds
        )

    @property
    def ticker(self) -> Ticker:
        return self._ticker

    def cancel(self) -> None:
        """Stop polling; the pending `wait` returns `timed_out` at its next step."""

        self._ticker.cancel()

    async def wait(self) -> ProvisioningStatus:
        clock = self._ctx.clock
        started = clock()
        polls = 0

        def finish(state: ProvisioningState, ip: str | None = None, *, cancelled: bool = False) -> ProvisioningStatus:
            return ProvisioningStatus(
                state=state,
                ip=ip,
                polls=polls,
                elapsed_seconds=max(0.0, clock() - started),
                cancelled=cancelled,
            )

        try:
            with _indicator_scope(self._ctx.indicator, WAIT_MESSAGE):
                while True:
                    if self._ticker.cancelled:
                        logger.info("Provisioning wait cancelled after %d poll(s)", polls)
                        return finish(ProvisioningState.TIMED_OUT, cancelled=True)

                    address = await self._probe()
                    polls += 1
                    if self._ticker.cancelled:
                        logger.info("Provisioning wait cancelled after %d poll(s)", polls)
                        return finish(ProvisioningState.TIMED_OUT, cancelled=True)
                    if is_usable_address(address):
                        logger.info("Machine address assigned after %d poll(s): %s", polls, address)
                        return finish(ProvisioningState.READY, str(address).strip())

                    elapsed = clock() - started
                    logger.debug("Poll %d: no address yet (%.0fs elapsed)", polls, elapsed)
                    if elapsed >= self._timeout:
                        logger.warning("Timeout (%.0f min) waiting for the machine address", self._timeout / 60)
                        return finish(ProvisioningState.TIMED_OUT)

                    if not await self._ticker.tick():
                        logger.info("Provisioning wait cancelled after %d poll(s)", polls)
                        return finish(ProvisioningState.TIMED_OUT, cancelled=True)
        finally:
            self._ticker.close()
