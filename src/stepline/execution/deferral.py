"""Deferral strategies — schedule a callback on a future loop turn.

WHY
───
A queue never invokes a step inside the caller's stack. Every dispatch
first yields one scheduling turn, so a step may enqueue more steps while it
runs and synchronous and asynchronous steps observe the same timing.

ARCHITECTURE
────────────
::

    Deferrer (protocol)            .defer(callback) → None
      ├── CallSoonDeferrer         loop.call_soon     (immediate callback)
      └── TimerDeferrer            loop.call_later    (timer fallback)

    select_deferrer(settings)      chosen once, injected into the queue
    next_turn(deferrer)            await one deferred turn

Example::

    deferrer = select_deferrer(QueueSettings(deferral="timer"))
    await next_turn(deferrer)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from stepline.core.errors import ConfigError
from stepline.core.logging import get_logger
from stepline.core.settings import QueueSettings

logger = get_logger(__name__)


@runtime_checkable
class Deferrer(Protocol):
    """Schedules ``callback`` to run on a later turn, never synchronously."""

    def defer(self, callback: Callable[[], object]) -> None: ...


class CallSoonDeferrer:
    """Runs callbacks on the next iteration of the running event loop."""

    name = "soon"

    def defer(self, callback: Callable[[], object]) -> None:
        asyncio.get_running_loop().call_soon(callback)

    def __repr__(self) -> str:
        return "CallSoonDeferrer()"


class TimerDeferrer:
    """Runs callbacks after ``delay`` seconds (zero still means a later turn)."""

    name = "timer"

    def __init__(self, delay: float = 0.0) -> None:
        if delay < 0:
            raise ConfigError(f"Timer delay must be non-negative, got {delay}")
        self.delay = delay

    def defer(self, callback: Callable[[], object]) -> None:
        asyncio.get_running_loop().call_later(self.delay, callback)

    def __repr__(self) -> str:
        return f"TimerDeferrer(delay={self.delay})"


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def select_deferrer(settings: QueueSettings) -> Deferrer:
    """Pick the deferral strategy named by ``settings.deferral``.

    ``auto`` prefers the immediate-callback facility of the event loop and
    falls back to a timer when the loop policy in use does not expose one.
    """
    choice = settings.deferral
    if choice == "auto":
        loop = _running_loop()
        immediate = loop is None or callable(getattr(loop, "call_soon", None))
        choice = "soon" if immediate else "timer"
        logger.debug("deferral.selected", strategy=choice)

    if choice == "soon":
        return CallSoonDeferrer()
    if choice == "timer":
        return TimerDeferrer(settings.timer_delay)
    raise ConfigError(f"Unknown deferral strategy: {settings.deferral!r}")


async def next_turn(deferrer: Deferrer) -> None:
    """Suspend until ``deferrer`` runs a callback on a later turn."""
    turn = asyncio.get_running_loop().create_future()

    def _wake() -> None:
        if not turn.done():
            turn.set_result(None)

    deferrer.defer(_wake)
    await turn


__all__ = [
    "Deferrer",
    "CallSoonDeferrer",
    "TimerDeferrer",
    "select_deferrer",
    "next_turn",
]
