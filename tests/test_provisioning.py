"""Tests for the provisioning wait loop."""

from __future__ import annotations

import asyncio
import os
import signal
import sys

import pydantic
import pytest

from conftest import FakeTicker, RecordingIndicator
from htb_cli.adapters.ticker import AsyncTicker, cancel_on_interrupt
from htb_cli.core.domain.models import ProvisioningState, ProvisioningStatus
from htb_cli.core.errors import TransportError
from htb_cli.core.services.provisioning import ProvisioningWaiter, fetch_machine_address


def _probe_sequence(*values):
    """Probe returning `values` in order, then repeating the last one."""

    remaining = list(values)
    calls = {"count": 0}

    async def probe():
        calls["count"] += 1
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return probe, calls


class TestWaitOutcome:
    @pytest.mark.parametrize("pending_polls", [0, 1, 3, 20])
    def test_ready_after_pending_polls(self, make_ctx, pending_polls):
        probe, calls = _probe_sequence(*(["Undefined"] * pending_polls), "10.10.11.5")
        waiter = ProvisioningWaiter(make_ctx(), probe=probe)

        status = asyncio.run(waiter.wait())

        assert status.state is ProvisioningState.READY
        assert status.ip == "10.10.11.5"
        assert status.polls == pending_polls + 1
        assert calls["count"] == pending_polls + 1
        assert status.elapsed_seconds == pending_polls * 6.0
        assert status.elapsed_seconds <= 600.0

    def test_missing_address_counts_as_pending(self, make_ctx):
        probe, _ = _probe_sequence(None, "", "10.10.11.5")
        waiter = ProvisioningWaiter(make_ctx(), probe=probe)

        status = asyncio.run(waiter.wait())

        assert status.is_ready
        assert status.polls == 3

    def test_times_out_exactly_at_the_boundary(self, make_ctx):
        probe, calls = _probe_sequence("Undefined")
        waiter = ProvisioningWaiter(make_ctx(), probe=probe)

        status = asyncio.run(waiter.wait())

        assert status.state is ProvisioningState.TIMED_OUT
        assert status.ip is None
        assert not status.cancelled
        assert status.elapsed_seconds == 600.0
        # polls at 0, 6, ..., 600 seconds
        assert calls["count"] == 101
        assert waiter.ticker.ticks == 100

    def test_custom_timeout(self, make_ctx):
        probe, _ = _probe_sequence("Undefined")
        waiter = ProvisioningWaiter(make_ctx(), probe=probe, timeout_seconds=30)

        status = asyncio.run(waiter.wait())

        assert status.state is ProvisioningState.TIMED_OUT
        assert status.elapsed_seconds == 30.0
        assert status.polls == 6


class TestCancellation:
    def test_cancel_during_wait_times_out_and_releases_indicator(self, make_ctx, clock):
        indicator = RecordingIndicator()
        probe, calls = _probe_sequence("Undefined")
        ticker = FakeTicker(clock, cancel_after=2)
        waiter = ProvisioningWaiter(make_ctx(indicator=indicator), probe=probe, ticker=ticker)

        status = asyncio.run(waiter.wait())

        assert status.state is ProvisioningState.TIMED_OUT
        assert status.cancelled
        assert calls["count"] == 2
        assert indicator.events == ["start", "stop"]
        assert ticker.closed

    def test_cancel_while_probing_never_returns_ready(self, make_ctx):
        waiter: ProvisioningWaiter

        async def probe():
            waiter.cancel()
            return "10.10.11.5"

        waiter = ProvisioningWaiter(make_ctx(), probe=probe)

        status = asyncio.run(waiter.wait())

        assert status.state is ProvisioningState.TIMED_OUT
        assert status.cancelled
        assert status.ip is None

    def test_already_cancelled_ticker_does_not_poll(self, make_ctx, clock):
        probe, calls = _probe_sequence("10.10.11.5")
        ticker = FakeTicker(clock)
        ticker.cancel()
        waiter = ProvisioningWaiter(make_ctx(), probe=probe, ticker=ticker)

        status = asyncio.run(waiter.wait())

        assert status.cancelled
        assert calls["count"] == 0


class TestIndicator:
    def test_indicator_failure_does_not_change_outcome(self, make_ctx):
        indicator = RecordingIndicator(fail_on_start=True)
        probe, _ = _probe_sequence("Undefined", "10.10.11.5")
        waiter = ProvisioningWaiter(make_ctx(indicator=indicator), probe=probe)

        status = asyncio.run(waiter.wait())

        assert status.is_ready
        assert indicator.events == ["start", "stop"]

    def test_indicator_stopped_when_probe_fails(self, make_ctx):
        indicator = RecordingIndicator()

        async def probe():
            raise TransportError("boom", status_code=502)

        waiter = ProvisioningWaiter(make_ctx(indicator=indicator), probe=probe)

        with pytest.raises(TransportError):
            asyncio.run(waiter.wait())

        assert indicator.events == ["start", "stop"]


def test_ready_status_requires_a_real_address():
    with pytest.raises(pydantic.ValidationError):
        ProvisioningStatus(state=ProvisioningState.READY, ip="Undefined")


def test_fetch_machine_address_reads_active_machine_profile(make_ctx):
    ctx = make_ctx(
        {
            ("GET", "/machine/active"): {"info": {"id": 5, "name": "Lame"}},
            ("GET", "/machine/profile/5"): {"info": {"id": 5, "name": "Lame", "ip": "10.10.10.3"}},
        }
    )

    assert asyncio.run(fetch_machine_address(ctx)) == "10.10.10.3"


def test_fetch_machine_address_without_active_machine(make_ctx):
    ctx = make_ctx({("GET", "/machine/active"): {"info": None}})

    assert asyncio.run(fetch_machine_address(ctx)) is None


class TestAsyncTicker:
    def test_tick_returns_true_after_interval(self):
        async def scenario():
            return await AsyncTicker(0.01).tick()

        assert asyncio.run(scenario()) is True

    def test_cancel_wakes_a_sleeping_tick(self):
        async def scenario():
            ticker = AsyncTicker(60)
            asyncio.get_running_loop().call_later(0.01, ticker.cancel)
            result = await asyncio.wait_for(ticker.tick(), timeout=5)
            return result, await ticker.tick()

        assert asyncio.run(scenario()) == (False, False)

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            AsyncTicker(0)


@pytest.mark.skipif(sys.platform.startswith("win"), reason="loop signal handlers are POSIX only")
class TestInterrupt:
    def test_sigint_during_wait_cancels_and_releases_indicator(self, make_ctx):
        indicator = RecordingIndicator()

        async def probe():
            return "Undefined"

        async def scenario():
            loop = asyncio.get_running_loop()
            ticker = cancel_on_interrupt(AsyncTicker(60))
            waiter = ProvisioningWaiter(make_ctx(indicator=indicator), probe=probe, ticker=ticker)
            loop.call_later(0.05, os.kill, os.getpid(), signal.SIGINT)
            status = await asyncio.wait_for(waiter.wait(), timeout=5)
            return status, loop.remove_signal_handler(signal.SIGINT)

        status, handler_left = asyncio.run(scenario())

        assert status.state is ProvisioningState.TIMED_OUT
        assert status.cancelled
        assert status.ip is None
        assert status.polls == 1
        assert indicator.events == ["start", "stop"]
        assert handler_left is False

    def test_close_removes_signal_handlers(self):
        async def scenario():
            loop = asyncio.get_running_loop()
            ticker = cancel_on_interrupt(AsyncTicker(60))
            ticker.close()
            ticker.close()
            return loop.remove_signal_handler(signal.SIGINT), loop.remove_signal_handler(signal.SIGTERM)

        assert asyncio.run(scenario()) == (False, False)
