"""
Deadline Tracker
----------------
Hard wall-clock deadline for the quiz: end_instant = started_at + duration,
fixed for the session. Remaining time is recomputed from the clock on every
tick, so pausing the consuming process cannot buy time.

Warnings fire once per threshold. A threshold is consumed the first time a
tick observes remaining <= threshold, so a late or jittery tick still fires
it; a tracker that starts below a threshold never fires it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set, Tuple

from proctor.core.countdown import WallClockCountdown, floor_seconds
from proctor.core.timers import Scheduler
from proctor.observability.logging import log

FIVE_MINUTES_IN_SECONDS = 300
ONE_MINUTE_IN_SECONDS = 60

WARNING_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (FIVE_MINUTES_IN_SECONDS, "5 minutes remaining!"),
    (ONE_MINUTE_IN_SECONDS, "1 minute remaining!"),
)


@dataclass
class DeadlineState:
    end_instant: float
    crossed_thresholds: Set[int] = field(default_factory=set)
    expired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endInstant": self.end_instant,
            "crossedThresholds": sorted(self.crossed_thresholds),
            "expired": self.expired,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeadlineState":
        return cls(
            end_instant=float(data["endInstant"]),
            crossed_thresholds={int(x) for x in (data.get("crossedThresholds") or [])},
            expired=bool(data.get("expired", False)),
        )


def format_remaining(seconds: int) -> str:
    """m:ss, e.g. 1799 -> '29:59'."""
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins}:{secs:02d}"


def time_band(seconds: int) -> str:
    if seconds < ONE_MINUTE_IN_SECONDS:
        return "critical"
    if seconds < FIVE_MINUTES_IN_SECONDS:
        return "caution"
    return "normal"


class DeadlineTracker:
    def __init__(
        self,
        clock,
        started_at: float,
        duration_minutes: float,
        *,
        on_warning: Callable[[str], None],
        on_time_up: Callable[[], None],
        state: Optional[DeadlineState] = None,
    ) -> None:
        self.clock = clock
        self.on_warning = on_warning
        self.on_time_up = on_time_up

        if state is None:
            state = DeadlineState(end_instant=float(started_at) + float(duration_minutes) * 60.0)
            # Thresholds already behind us at start are never announced
            initial = floor_seconds(state.end_instant - clock.now())
            state.crossed_thresholds = {t for t, _ in WARNING_THRESHOLDS if initial < t}
        self.state = state

        self._countdown = WallClockCountdown(
            clock,
            anchor=started_at,
            duration_seconds=state.end_instant - float(started_at),
            on_expire=self._expire,
            rounding=floor_seconds,
            on_tick=self._check_thresholds,
        )
        self._countdown.expired = state.expired

    @property
    def end_instant(self) -> float:
        return self.state.end_instant

    @property
    def remaining_seconds(self) -> int:
        return self._countdown.remaining()

    @property
    def expired(self) -> bool:
        return self.state.expired

    def tick(self) -> int:
        return self._countdown.check()

    def start(self, scheduler: Scheduler, interval: float = 1.0) -> None:
        self._countdown.start(scheduler, interval)

    def stop(self) -> None:
        self._countdown.cancel()

    def _check_thresholds(self, remaining: int) -> None:
        if remaining <= 0:
            return
        due = [t for t, _ in WARNING_THRESHOLDS if t not in self.state.crossed_thresholds and remaining <= t]
        if not due:
            return
        # One tick may jump past several thresholds; only the tightest is announced
        self.state.crossed_thresholds.update(due)
        threshold = min(due)
        message = dict(WARNING_THRESHOLDS)[threshold]
        log(event="deadline_warning", threshold=threshold, remainingSeconds=remaining)
        self.on_warning(message)

    def _expire(self) -> None:
        self.state.expired = True
        self.state.crossed_thresholds.update(t for t, _ in WARNING_THRESHOLDS)
        log(event="deadline_expired", endInstant=self.state.end_instant)
        self.on_time_up()
