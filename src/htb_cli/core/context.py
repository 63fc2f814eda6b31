"""Per-command context.

Built once by the CLI and passed explicitly to every service. It bundles the
settings, the transport and the few external collaborators (clock, ticker
factory, progress indicator, prompts) so that tests can swap each of them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from htb_cli.core.config import AppSettings
from htb_cli.core.interfaces.polling import ProgressIndicator, Ticker
from htb_cli.core.interfaces.transport import LabTransport


class NullIndicator:
    """Progress indicator that shows nothing."""

    def start(self, message: str) -> None:
        return None

    def stop(self) -> None:
        return None


def _always_yes(question: str) -> bool:
    return True


def _no_secret(prompt: str) -> str:
    raise RuntimeError("no secret reader configured")


@dataclass
class AppContext:
    settings: AppSettings
    transport: LabTransport
    make_ticker: Callable[[float], Ticker]
    clock: Callable[[], float] = time.monotonic
    indicator: ProgressIndicator = field(default_factory=NullIndicator)
    confirm: Callable[[str], bool] = _always_yes
    read_secret: Callable[[str], str] = _no_secret
