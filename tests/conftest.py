"""Pytest fixtures for htb-cli tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

import pytest

from htb_cli.core.config import AppSettings
from htb_cli.core.context import AppContext
from htb_cli.core.interfaces.transport import extract_envelope


class FakeTransport:
    """In-memory `LabTransport`.

    `routes` maps ``(method, path)`` to a document, an exception instance
    (raised), or a callable receiving the params/payload and returning one
    of those. Every call is recorded in `calls`.
    """

    def __init__(self, routes: Mapping[tuple[str, str], Any] | None = None) -> None:
        self.routes: dict[tuple[str, str], Any] = dict(routes or {})
        self.calls: list[tuple[str, str, Any]] = []

    async def get(self, path: str, *, params=None, envelope=None) -> Any:
        return await self._handle("GET", path, params, envelope)

    async def post(self, path: str, payload=None, *, envelope=None) -> Any:
        return await self._handle("POST", path, dict(payload or {}), envelope)

    async def _handle(self, method: str, path: str, data: Any, envelope: str | None) -> Any:
        self.calls.append((method, path, data))
        key = (method, path)
        if key not in self.routes:
            raise AssertionError(f"unexpected request: {method} {path}")
        value = self.routes[key]
        if callable(value):
            value = value(data)
            if asyncio.iscoroutine(value):
                value = await value
        if isinstance(value, Exception):
            raise value
        return extract_envelope(value, envelope, url=path)

    def paths(self, method: str | None = None) -> list[str]:
        return [path for m, path, _ in self.calls if method is None or m == method]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeTicker:
    """Advances the fake clock by `interval` on each tick instead of sleeping."""

    def __init__(self, clock: FakeClock, interval: float = 6.0, *, cancel_after: int | None = None) -> None:
        self.clock = clock
        self.interval = interval
        self.ticks = 0
        self.cancel_after = cancel_after
        self._cancelled = False
        self.closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def close(self) -> None:
        self.closed = True

    async def tick(self) -> bool:
        if self._cancelled:
            return False
        self.ticks += 1
        self.clock.now += self.interval
        if self.cancel_after is not None and self.ticks >= self.cancel_after:
            self._cancelled = True
            return False
        return True


class RecordingIndicator:
    def __init__(self, *, fail_on_start: bool = False) -> None:
        self.events: list[str] = []
        self.fail_on_start = fail_on_start

    def start(self, message: str) -> None:
        self.events.append("start")
        if self.fail_on_start:
            raise RuntimeError("terminal is gone")

    def stop(self) -> None:
        self.events.append("stop")


class SecretReader:
    def __init__(self, value: str = "HTB{fake_flag}") -> None:
        self.value = value
        self.calls = 0

    def __call__(self, prompt: str) -> str:
        self.calls += 1
        return self.value


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        api_token="test-token",
        api_base_url="https://api.test/api/v4",
        poll_interval_seconds=6.0,
        provisioning_timeout_seconds=600.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_ctx(settings: AppSettings, clock: FakeClock) -> Callable[..., AppContext]:
    """Build an `AppContext` around a `FakeTransport`."""

    def factory(
        routes: Mapping[tuple[str, str], Any] | None = None,
        *,
        transport: FakeTransport | None = None,
        confirm: Callable[[str], bool] | None = None,
        read_secret: Callable[[str], str] | None = None,
        indicator: Any = None,
    ) -> AppContext:
        ctx = AppContext(
            settings=settings,
            transport=transport or FakeTransport(routes),
            make_ticker=lambda interval: FakeTicker(clock, interval),
            clock=clock,
            read_secret=read_secret or SecretReader(),
        )
        if confirm is not None:
            ctx.confirm = confirm
        if indicator is not None:
            ctx.indicator = indicator
        return ctx

    return factory
