from unittest.mock import MagicMock

from proctor.core.monitor import MonitorPolicy
from proctor.core.session import Outcome, ProctorSession, TerminalSignal
from proctor.core.violations import ViolationKind


def _session(clock, scheduler, minutes=30, started_at=None, **kwargs):
    on_terminal = MagicMock()
    session = ProctorSession(
        "sess-1",
        clock,
        scheduler,
        started_at=clock.now() if started_at is None else started_at,
        duration_minutes=minutes,
        on_terminal=on_terminal,
        policy=MonitorPolicy(),
        **kwargs,
    )
    return session, on_terminal


def test_time_up_emits_single_time_expired_signal(clock, scheduler):
    session, on_terminal = _session(clock, scheduler, minutes=1)
    session.start()
    session.report("tab_switch")

    scheduler.advance(60)

    on_terminal.assert_called_once()
    signal = on_terminal.call_args.args[0]
    assert signal.outcome is Outcome.TIME_EXPIRED
    assert signal.forced_by_timeout is True
    assert signal.forced_by_lockdown is False
    assert [v.kind for v in signal.violations] == [ViolationKind.TAB_SWITCH]

    # Monitor is latched: nothing can start a second signal
    assert session.monitor.submitted is True
    assert session.report("copy_attempt") is None
    scheduler.advance(60)
    on_terminal.assert_called_once()
    assert scheduler.active == 0


def test_forced_submission_stops_the_deadline(clock, scheduler):
    session, on_terminal = _session(clock, scheduler, minutes=1)
    session.start()

    session.report("paste_attempt")

    on_terminal.assert_called_once()
    signal = on_terminal.call_args.args[0]
    assert signal.outcome is Outcome.FORCED_SUBMISSION
    assert signal.reason == "instant_violation"
    assert signal.forced_by_lockdown is True
    assert signal.forced_by_timeout is False

    scheduler.advance(120)
    on_terminal.assert_called_once()


def test_reentry_timeout_and_deadline_never_both_fire(clock, scheduler):
    # Countdown and deadline expire on the same instant
    session, on_terminal = _session(clock, scheduler, started_at=clock.now() - 50, minutes=1)
    session.start()
    session.fullscreen_changed(False)

    scheduler.advance(10)

    on_terminal.assert_called_once()


def test_start_runs_first_tick_immediately(clock, scheduler):
    session, on_terminal = _session(clock, scheduler, started_at=clock.now() - 3600, minutes=30)
    session.start()
    on_terminal.assert_called_once()
    assert on_terminal.call_args.args[0].outcome is Outcome.TIME_EXPIRED
    assert session.remaining_seconds == 0


def test_finish_is_not_a_terminal_signal(clock, scheduler):
    session, on_terminal = _session(clock, scheduler)
    session.start()
    session.finish("manual")

    assert session.closed is True
    assert session.terminal is None
    scheduler.advance(1800)
    on_terminal.assert_not_called()


def test_deadline_warning_shows_in_view(clock, scheduler):
    session, _ = _session(clock, scheduler, minutes=6)
    session.start()
    scheduler.advance(60)

    view = session.view()
    assert view["warning"] == "5 minutes remaining!"
    assert view["remainingSeconds"] == 300
    assert view["remainingDisplay"] == "5:00"
    assert view["timeBand"] == "normal"

    scheduler.advance(5)
    assert session.view()["warning"] is None


def test_view_reports_monitor_state(clock, scheduler):
    session, _ = _session(clock, scheduler)
    session.start()
    session.fullscreen_changed(False)
    scheduler.advance(2)

    view = session.view()
    assert view["fullscreenCountdown"] == 8
    assert view["isFullscreen"] is False
    assert view["environmentalStrikes"] == 1
    assert view["violations"][0]["type"] == "fullscreen_exit"
    assert view["closed"] is False
    assert view["terminal"] is None


def test_terminal_signal_dict_round_trip(clock, scheduler):
    session, on_terminal = _session(clock, scheduler)
    session.start()
    session.report("drop_attempt")

    signal = on_terminal.call_args.args[0]
    data = signal.to_dict()
    assert data["outcome"] == "forced_submission"
    assert data["forcedByLockdown"] is True
    assert data["forcedByTimeout"] is False

    restored = TerminalSignal.from_dict(data)
    assert restored.outcome is Outcome.FORCED_SUBMISSION
    assert restored.reason == "instant_violation"
    assert [v.kind for v in restored.violations] == [ViolationKind.DROP_ATTEMPT]


def test_session_rebuilt_with_terminal_is_closed(clock, scheduler):
    first, on_terminal = _session(clock, scheduler)
    first.start()
    first.report("cut_attempt")
    signal = on_terminal.call_args.args[0]

    again, on_terminal_again = _session(
        clock,
        scheduler,
        deadline_state=first.tracker.state,
        monitor_state=first.monitor.state,
        terminal=signal,
    )
    again.start()
    assert again.closed is True
    assert again.report("tab_switch") is None
    scheduler.advance(3600)
    on_terminal_again.assert_not_called()
