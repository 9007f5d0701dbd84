"""
Wall-clock anchored countdown shared by the deadline tracker and the
fullscreen re-entry countdown.

Remaining time is always `anchor + duration - clock.now()`, recomputed from
scratch on every check. A frozen or suspended process therefore gains
nothing: the first check after it resumes sees the true remaining time.
"""

from __future__ import annotations

import math
from typing import Callable, Optional

from proctor.core.timers import Scheduler, TimerHandle


def floor_seconds(value: float) -> int:
    return max(0, math.floor(value))


def ceil_seconds(value: float) -> int:
    return max(0, math.ceil(value))


class WallClockCountdown:
    def __init__(
        self,
        clock,
        anchor: float,
        duration_seconds: float,
        on_expire: Callable[[], None],
        *,
        rounding: Callable[[float], int] = floor_seconds,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.clock = clock
        self.anchor = float(anchor)
        self.duration_seconds = float(duration_seconds)
        self.on_expire = on_expire
        self.rounding = rounding
        self.on_tick = on_tick
        self.expired = False
        self._handle: Optional[TimerHandle] = None

    @property
    def end_instant(self) -> float:
        return self.anchor + self.duration_seconds

    @property
    def running(self) -> bool:
        return self._handle is not None

    def remaining(self) -> int:
        """Whole seconds left, never negative."""
        return self.rounding(self.end_instant - self.clock.now())

    def check(self) -> int:
        """Recompute remaining; fire on_expire once when it reaches zero."""
        remaining = self.remaining()
        if self.expired:
            return remaining
        if self.on_tick is not None:
            self.on_tick(remaining)
        if remaining <= 0:
            self.expired = True
            self.cancel()
            self.on_expire()
        return remaining

    def start(self, scheduler: Scheduler, interval: float) -> None:
        self.cancel()
        self._handle = scheduler.call_every(interval, self.check)

    def cancel(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            handle.cancel()
