"""
Proctor session: one Deadline Tracker plus one Violation Monitor sharing a
single terminal latch.

Exactly one terminal signal per session, TIME_EXPIRED or FORCED_SUBMISSION,
fired synchronously with the event (or tick) that caused it. The signal
carries the audit trail snapshot and the two independent flags the
submission API needs (forced_by_timeout / forced_by_lockdown).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from proctor.core.deadline import DeadlineState, DeadlineTracker, format_remaining, time_band
from proctor.core.monitor import MonitorPolicy, MonitorState, ViolationMonitor
from proctor.core.timers import Scheduler
from proctor.core.violations import Violation
from proctor.observability.logging import log
from proctor.settings import settings
from proctor.utils.time import parse_timestamp, to_iso


class Outcome(str, Enum):
    TIME_EXPIRED = "time_expired"
    FORCED_SUBMISSION = "forced_submission"


@dataclass(frozen=True)
class TerminalSignal:
    outcome: Outcome
    reason: str
    at: float
    violations: Tuple[Violation, ...] = ()

    @property
    def forced_by_timeout(self) -> bool:
        return self.outcome is Outcome.TIME_EXPIRED

    @property
    def forced_by_lockdown(self) -> bool:
        return self.outcome is Outcome.FORCED_SUBMISSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "at": to_iso(self.at),
            "forcedByTimeout": self.forced_by_timeout,
            "forcedByLockdown": self.forced_by_lockdown,
            "violations": [v.to_dict() for v in self.violations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerminalSignal":
        return cls(
            outcome=Outcome(data["outcome"]),
            reason=str(data.get("reason") or ""),
            at=parse_timestamp(data["at"]),
            violations=tuple(Violation.from_dict(v) for v in (data.get("violations") or [])),
        )


class ProctorSession:
    def __init__(
        self,
        session_id: str,
        clock,
        scheduler: Scheduler,
        *,
        started_at: float,
        duration_minutes: float,
        on_terminal: Callable[[TerminalSignal], None],
        on_change: Optional[Callable[[], None]] = None,
        policy: Optional[MonitorPolicy] = None,
        deadline_state: Optional[DeadlineState] = None,
        monitor_state: Optional[MonitorState] = None,
        terminal: Optional[TerminalSignal] = None,
    ) -> None:
        self.session_id = session_id
        self.clock = clock
        self.scheduler = scheduler
        self.started_at = float(started_at)
        self.duration_minutes = float(duration_minutes)
        self.on_terminal = on_terminal
        self.on_change = on_change
        self.terminal = terminal
        self.closed = terminal is not None
        self._deadline_warning: Optional[str] = None
        self._deadline_warning_expires_at: Optional[float] = None
        self._policy = policy or MonitorPolicy.from_settings()

        self.tracker = DeadlineTracker(
            clock,
            started_at=self.started_at,
            duration_minutes=self.duration_minutes,
            on_warning=self._on_deadline_warning,
            on_time_up=self._on_time_up,
            state=deadline_state,
        )
        self.monitor = ViolationMonitor(
            clock,
            scheduler,
            on_forced_submit=self._on_forced_submit,
            policy=self._policy,
            state=monitor_state,
        )
        if self.monitor.submitted:
            self.closed = True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.closed:
            return
        self.tracker.start(self.scheduler, settings.DEADLINE_POLL_MS / 1000.0)
        # First evaluation happens now, not one interval later
        self.tracker.tick()

    def finish(self, reason: str = "manual") -> None:
        """Student-initiated submission or view unmount: stop without a terminal signal."""
        if self.closed:
            return
        self.closed = True
        self.monitor.latch(reason)
        self.tracker.stop()
        log(event="session_finished", sessionId=self.session_id, reason=reason)
        self._changed()

    def teardown(self) -> None:
        self.tracker.stop()
        self.monitor.teardown()

    # ------------------------------------------------------------------
    # Host notifications
    # ------------------------------------------------------------------
    def poll(self) -> None:
        if self.closed:
            return
        self.tracker.tick()
        self.monitor.poll()

    def report(self, kind: Any) -> Optional[Violation]:
        if self.closed:
            return None
        violation = self.monitor.report(kind)
        if violation is not None:
            self._changed()
        return violation

    def fullscreen_changed(self, is_fullscreen: bool) -> Optional[Violation]:
        if self.closed:
            return None
        violation = self.monitor.fullscreen_changed(is_fullscreen)
        self._changed()
        return violation

    def fullscreen_request_result(self, granted: bool) -> None:
        if self.closed:
            return
        self.monitor.fullscreen_request_result(granted)
        self._changed()

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------
    @property
    def remaining_seconds(self) -> int:
        if self.terminal is not None and self.terminal.outcome is Outcome.TIME_EXPIRED:
            return 0
        return self.tracker.remaining_seconds

    @property
    def warning(self) -> Optional[str]:
        monitor_warning = self.monitor.warning
        if monitor_warning:
            return monitor_warning
        expires_at = self._deadline_warning_expires_at
        if expires_at is not None and self.clock.now() >= expires_at:
            return None
        return self._deadline_warning

    def view(self) -> Dict[str, Any]:
        remaining = self.remaining_seconds
        return {
            "sessionId": self.session_id,
            "remainingSeconds": remaining,
            "remainingDisplay": format_remaining(remaining),
            "timeBand": time_band(remaining),
            "warning": self.warning,
            "warningDisplayMs": int(settings.WARNING_DISPLAY_MS),
            "fullscreenCountdown": self.monitor.reentry_countdown,
            "isFullscreen": bool(self.monitor.state.is_fullscreen),
            "inGracePeriod": self.monitor.in_grace_period,
            "environmentalStrikes": self.monitor.state.environmental_strike_count,
            "violations": [v.to_dict() for v in self.monitor.audit_trail],
            "closed": self.closed,
            "terminal": self.terminal.to_dict() if self.terminal else None,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_deadline_warning(self, message: str) -> None:
        self._deadline_warning = message
        self._deadline_warning_expires_at = self.clock.now() + settings.WARNING_DISPLAY_MS / 1000.0
        self._changed()

    def _on_time_up(self) -> None:
        if self.closed:
            return
        self.monitor.latch(Outcome.TIME_EXPIRED.value)
        self._terminate(Outcome.TIME_EXPIRED, Outcome.TIME_EXPIRED.value)

    def _on_forced_submit(self, reason: str) -> None:
        if self.closed:
            return
        self.tracker.stop()
        self._terminate(Outcome.FORCED_SUBMISSION, reason)

    def _terminate(self, outcome: Outcome, reason: str) -> None:
        self.closed = True
        self.terminal = TerminalSignal(
            outcome=outcome,
            reason=reason,
            at=self.clock.now(),
            violations=self.monitor.audit_trail,
        )
        self.teardown()
        log(
            event="terminal_signal",
            sessionId=self.session_id,
            outcome=outcome.value,
            reason=reason,
            violations=len(self.terminal.violations),
        )
        self._changed()
        self.on_terminal(self.terminal)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()
