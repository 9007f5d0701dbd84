"""
Violation Monitor
-----------------
Classifies host-reported environmental events and decides when to force
submission.

Policy:
- INSTANT violations (copy/cut/paste/drop/devtools) force submission on the
  spot: no countdown, no grace.
- ENVIRONMENTAL violations (fullscreen exit, tab switch, window blur) are
  tolerated up to the strike limit. The first one warns (and a fullscreen
  exit starts a re-entry countdown); exceeding the limit forces submission
  immediately, without a second countdown.
- Re-entering fullscreen cancels the countdown and opens a grace period in
  which nothing is recorded (the fullscreen dialog itself causes focus and
  visibility churn). Strikes are never reset.

INVARIANT: `submitted` is a one-way latch. Once set, the monitor records
nothing, fires nothing, and holds no timers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from proctor.core.countdown import WallClockCountdown, ceil_seconds
from proctor.core.timers import Scheduler, TimerHandle
from proctor.core.violations import (
    Violation,
    ViolationClass,
    ViolationKind,
    classify,
    parse_kind,
)
from proctor.observability.logging import log
from proctor.settings import settings

STRIKE_WARNING = "Warning: leave again and your quiz will be auto-submitted."
SUBMITTED_MESSAGE = "Your quiz has been submitted."

# Forced-submission reasons
REASON_INSTANT = "instant_violation"
REASON_STRIKE_LIMIT = "strike_limit"
REASON_REENTRY_TIMEOUT = "reentry_timeout"


@dataclass(frozen=True)
class MonitorPolicy:
    strike_limit: int = 1
    reentry_seconds: float = 10.0
    grace_period_seconds: float = 5.0
    warning_display_seconds: float = 5.0
    blur_suppress_seconds: float = 0.5
    countdown_poll_seconds: float = 0.5

    @classmethod
    def from_settings(cls) -> "MonitorPolicy":
        return cls(
            strike_limit=int(settings.STRIKE_LIMIT),
            reentry_seconds=float(settings.REENTRY_SECONDS),
            grace_period_seconds=settings.GRACE_PERIOD_MS / 1000.0,
            warning_display_seconds=settings.WARNING_DISPLAY_MS / 1000.0,
            blur_suppress_seconds=settings.BLUR_SUPPRESS_AFTER_FS_EXIT_MS / 1000.0,
            countdown_poll_seconds=settings.COUNTDOWN_POLL_MS / 1000.0,
        )


@dataclass
class MonitorState:
    environmental_strike_count: int = 0
    reentry_deadline: Optional[float] = None
    grace_until: Optional[float] = None
    submitted: bool = False
    submit_reason: Optional[str] = None
    violations: List[Violation] = field(default_factory=list)
    kind_counts: Dict[str, int] = field(default_factory=dict)
    last_fullscreen_exit_at: Optional[float] = None
    is_fullscreen: bool = False
    warning: Optional[str] = None
    warning_expires_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environmentalStrikeCount": self.environmental_strike_count,
            "reentryDeadline": self.reentry_deadline,
            "graceUntil": self.grace_until,
            "submitted": self.submitted,
            "submitReason": self.submit_reason,
            "violations": [v.to_dict() for v in self.violations],
            "kindCounts": dict(self.kind_counts),
            "lastFullscreenExitAt": self.last_fullscreen_exit_at,
            "isFullscreen": self.is_fullscreen,
            "warning": self.warning,
            "warningExpiresAt": self.warning_expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorState":
        return cls(
            environmental_strike_count=int(data.get("environmentalStrikeCount") or 0),
            reentry_deadline=data.get("reentryDeadline"),
            grace_until=data.get("graceUntil"),
            submitted=bool(data.get("submitted", False)),
            submit_reason=data.get("submitReason"),
            violations=[Violation.from_dict(v) for v in (data.get("violations") or [])],
            kind_counts={str(k): int(v) for k, v in (data.get("kindCounts") or {}).items()},
            last_fullscreen_exit_at=data.get("lastFullscreenExitAt"),
            is_fullscreen=bool(data.get("isFullscreen", False)),
            warning=data.get("warning"),
            warning_expires_at=data.get("warningExpiresAt"),
        )


class ViolationMonitor:
    def __init__(
        self,
        clock,
        scheduler: Scheduler,
        *,
        on_forced_submit: Callable[[str], None],
        on_violation: Optional[Callable[[Violation], None]] = None,
        policy: Optional[MonitorPolicy] = None,
        state: Optional[MonitorState] = None,
    ) -> None:
        self.clock = clock
        self.scheduler = scheduler
        self.on_forced_submit = on_forced_submit
        self.on_violation = on_violation
        self.policy = policy or MonitorPolicy.from_settings()
        self.state = state or MonitorState()

        self._countdown: Optional[WallClockCountdown] = None
        self._grace_timer: Optional[TimerHandle] = None
        self._warning_timer: Optional[TimerHandle] = None

        if not self.state.submitted:
            self._resume_timers()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def submitted(self) -> bool:
        return self.state.submitted

    @property
    def in_grace_period(self) -> bool:
        grace_until = self.state.grace_until
        return grace_until is not None and self.clock.now() < grace_until

    @property
    def audit_trail(self) -> Tuple[Violation, ...]:
        return tuple(self.state.violations)

    @property
    def reentry_countdown(self) -> Optional[int]:
        """Seconds left to re-enter fullscreen, or None when no countdown runs."""
        deadline = self.state.reentry_deadline
        if deadline is None:
            return None
        return ceil_seconds(deadline - self.clock.now())

    @property
    def warning(self) -> Optional[str]:
        expires_at = self.state.warning_expires_at
        if expires_at is not None and self.clock.now() >= expires_at:
            return None
        return self.state.warning

    def poll(self) -> None:
        """Catch up with the clock without waiting for a timer."""
        if self.state.submitted:
            return
        if self._countdown is not None:
            self._countdown.check()
        grace_until = self.state.grace_until
        if grace_until is not None and self.clock.now() >= grace_until:
            self._end_grace()

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------
    def report(self, raw_kind: Any) -> Optional[Violation]:
        """
        Process one environmental notification.
        Returns the recorded Violation, or None if the event was discarded.
        """
        if self.state.submitted or self.in_grace_period:
            return None

        kind = parse_kind(raw_kind)
        if kind is None:
            log(event="violation_unknown_kind_ignored", kind=str(raw_kind)[:64])
            return None

        now = self.clock.now()
        if kind is ViolationKind.WINDOW_BLUR:
            # The blur that follows a fullscreen exit is the same physical action
            last_exit = self.state.last_fullscreen_exit_at
            if last_exit is not None and now - last_exit < self.policy.blur_suppress_seconds:
                return None
        if kind is ViolationKind.FULLSCREEN_EXIT:
            self.state.last_fullscreen_exit_at = now
            self.state.is_fullscreen = False

        violation = self._record(kind, now)

        if classify(kind) is ViolationClass.INSTANT:
            self._force_submit(REASON_INSTANT)
            return violation

        self.state.environmental_strike_count += 1
        if self.state.environmental_strike_count > self.policy.strike_limit:
            # No second countdown: strike two is immediate
            self._force_submit(REASON_STRIKE_LIMIT)
            return violation

        self._set_warning(STRIKE_WARNING, transient=True)
        if kind is ViolationKind.FULLSCREEN_EXIT:
            self._start_countdown()
        return violation

    def fullscreen_changed(self, is_fullscreen: bool) -> Optional[Violation]:
        if self.state.submitted:
            return None
        if not is_fullscreen:
            if self.in_grace_period:
                self.state.is_fullscreen = False
                return None
            return self.report(ViolationKind.FULLSCREEN_EXIT)
        self.state.is_fullscreen = True
        self._begin_grace()
        return None

    def fullscreen_request_result(self, granted: bool) -> None:
        """Outcome of the host's request to enter fullscreen."""
        if self.state.submitted:
            return
        if granted:
            self.state.is_fullscreen = True
            self._begin_grace()
            return
        # Denied or unsupported: the student is outside the secure context
        self.state.is_fullscreen = False
        log(event="fullscreen_request_denied")
        if self.state.reentry_deadline is not None:
            # A running countdown keeps its original deadline
            return
        self._start_countdown()

    def latch(self, reason: str) -> None:
        """Seal the monitor without firing the forced-submission callback."""
        if self.state.submitted:
            return
        self.state.submitted = True
        self.state.submit_reason = reason
        self.teardown()

    def teardown(self) -> None:
        self._cancel_countdown()
        for handle in (self._grace_timer, self._warning_timer):
            if handle is not None:
                handle.cancel()
        self._grace_timer = None
        self._warning_timer = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _record(self, kind: ViolationKind, now: float) -> Violation:
        count = self.state.kind_counts.get(kind.value, 0) + 1
        self.state.kind_counts[kind.value] = count
        violation = Violation(kind=kind, timestamp=now, occurrence_index=count)
        self.state.violations.append(violation)
        log(
            event="violation_recorded",
            kind=kind.value,
            violationClass=classify(kind).value,
            occurrenceIndex=count,
            strikes=self.state.environmental_strike_count,
        )
        if self.on_violation is not None:
            self.on_violation(violation)
        return violation

    def _force_submit(self, reason: str) -> None:
        if self.state.submitted:
            return
        self.state.submitted = True
        self.state.submit_reason = reason
        self._set_warning(SUBMITTED_MESSAGE, transient=False)
        self.teardown()
        log(event="forced_submission", reason=reason, violations=len(self.state.violations))
        self.on_forced_submit(reason)

    def _start_countdown(self) -> None:
        now = self.clock.now()
        self._cancel_countdown()
        self.state.grace_until = None
        self.state.reentry_deadline = now + self.policy.reentry_seconds
        self._arm_countdown(anchor=now)
        log(event="reentry_countdown_started", seconds=self.policy.reentry_seconds)

    def _arm_countdown(self, anchor: float) -> None:
        self._countdown = WallClockCountdown(
            self.clock,
            anchor=anchor,
            duration_seconds=self.policy.reentry_seconds,
            on_expire=self._reentry_expired,
            rounding=ceil_seconds,
        )
        self._countdown.start(self.scheduler, self.policy.countdown_poll_seconds)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None
        self.state.reentry_deadline = None

    def _reentry_expired(self) -> None:
        self._countdown = None
        self.state.reentry_deadline = None
        log(event="reentry_countdown_expired")
        self._force_submit(REASON_REENTRY_TIMEOUT)

    def _begin_grace(self) -> None:
        if self.state.reentry_deadline is not None:
            log(event="reentry_countdown_cancelled", remaining=self.reentry_countdown)
        self._cancel_countdown()
        self.state.grace_until = self.clock.now() + self.policy.grace_period_seconds
        self._arm_grace_timer(self.policy.grace_period_seconds)

    def _arm_grace_timer(self, delay: float) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
        self._grace_timer = self.scheduler.call_later(delay, self._end_grace)

    def _end_grace(self) -> None:
        self._grace_timer = None
        if self.state.submitted or self.state.grace_until is None:
            return
        if self.clock.now() < self.state.grace_until:
            # Timer fired early relative to the wall clock; wait out the rest
            self._arm_grace_timer(self.state.grace_until - self.clock.now())
            return
        self.state.grace_until = None
        if not self.state.is_fullscreen and self.state.reentry_deadline is None:
            # Left fullscreen while the grace period masked it
            self.report(ViolationKind.FULLSCREEN_EXIT)

    def _set_warning(self, message: str, *, transient: bool) -> None:
        if self._warning_timer is not None:
            self._warning_timer.cancel()
            self._warning_timer = None
        self.state.warning = message
        if transient:
            delay = self.policy.warning_display_seconds
            self.state.warning_expires_at = self.clock.now() + delay
            self._warning_timer = self.scheduler.call_later(delay, self._clear_warning)
        else:
            self.state.warning_expires_at = None

    def _clear_warning(self) -> None:
        self._warning_timer = None
        if self.state.warning_expires_at is not None:
            self.state.warning = None
            self.state.warning_expires_at = None

    def _resume_timers(self) -> None:
        """Re-arm timers for a rehydrated state, using its wall-clock anchors."""
        now = self.clock.now()
        if self.state.reentry_deadline is not None:
            self._arm_countdown(anchor=self.state.reentry_deadline - self.policy.reentry_seconds)
        if self.state.grace_until is not None:
            self._arm_grace_timer(max(0.0, self.state.grace_until - now))
        if self.state.warning_expires_at is not None:
            self._warning_timer = self.scheduler.call_later(
                max(0.0, self.state.warning_expires_at - now), self._clear_warning
            )
