"""asyncio implementation of the `Ticker` contract."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable

logger = logging.getLogger(__name__)


class AsyncTicker:
    """Fixed-interval ticker. `cancel` wakes a sleeping `tick` immediately."""

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._event = asyncio.Event()
        self._on_close: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def add_close_callback(self, callback: Callable[[], object]) -> None:
        self._on_close.append(callback)

    def close(self) -> None:
        callbacks, self._on_close = self._on_close, []
        for callback in callbacks:
            callback()

    async def tick(self) -> bool:
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return True
        return False


def cancel_on_interrupt(ticker: AsyncTicker) -> AsyncTicker:
    """Route SIGINT/SIGTERM to `ticker.cancel` on the running loop until `ticker.close()`.

    Platforms without `add_signal_handler` (Windows) keep the default
    behaviour: the interrupt cancels the task and the waiter still releases
    its progress indicator on the way out.
    """

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, ticker.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("Signal %s cannot be routed to the ticker on this platform", sig)
            continue
        ticker.add_close_callback(lambda sig=sig: loop.remove_signal_handler(sig))
    return ticker
