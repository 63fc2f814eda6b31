"""Contracts used by the provisioning wait loop."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Ticker(Protocol):
    """Cancellable fixed-interval timer.

    `tick` waits one interval and returns True, or returns False as soon as
    `cancel` has been called (including while a tick is in progress).
    """

    async def tick(self) -> bool:
        ...

    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...

    def close(self) -> None:
        """Release whatever the ticker installed (signal handlers). Idempotent."""
        ...


@runtime_checkable
class ProgressIndicator(Protocol):
    """Best-effort visual feedback (spinner). Must tolerate `stop` without `start`."""

    def start(self, message: str) -> None:
        ...

    def stop(self) -> None:
        ...
