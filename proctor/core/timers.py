"""
Cancellable timers for the enforcement core.

The core never sleeps or blocks; it asks a Scheduler to call it back.
Everything runs on one event loop, so callbacks never interleave with
event handlers.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle: ...

    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle: ...


class _RepeatingHandle:
    """Re-arms loop.call_later after each run until cancelled."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, fn: Callable[[], None]) -> None:
        self._loop = loop
        self._interval = interval
        self._fn = fn
        self._cancelled = False
        self._next: Optional[asyncio.TimerHandle] = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        try:
            self._fn()
        finally:
            # fn may have cancelled us (e.g. countdown reached zero)
            if not self._cancelled:
                self._next = self._loop.call_later(self._interval, self._run)

    def cancel(self) -> None:
        self._cancelled = True
        if self._next is not None:
            self._next.cancel()
            self._next = None


class AsyncioScheduler:
    """Production scheduler bound to a running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), fn)

    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        return _RepeatingHandle(self.loop, interval, fn)
