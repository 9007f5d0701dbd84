import json
from unittest.mock import MagicMock, patch

import pytest

from proctor.core.entry_gate import DeviceProfile
from proctor.core.orchestrator import Orchestrator
from proctor.store.session_repo import find_session, save_session
from proctor.utils.exceptions import SessionBlocked, SessionClosed, SessionNotFound

IPHONE = DeviceProfile(max_touch_points=5, screen_width=390, user_agent="Mozilla/5.0 (iPhone)")


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def orch(clock, scheduler, fake_redis, dispatcher):
    return Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)


def _start(orch, clock, session_id="s1", minutes=30, device=None):
    return orch.start_session(
        session_id,
        submission_id="sub-" + session_id,
        started_at=clock.now(),
        duration_minutes=minutes,
        device=device,
    )


def test_start_session_persists_state(orch, clock, fake_redis):
    view = _start(orch, clock)

    assert view["sessionId"] == "s1"
    assert view["submissionId"] == "sub-s1"
    assert view["remainingSeconds"] == 1800
    assert view["submitStatus"] == "none"

    record = find_session("s1")
    assert record is not None
    assert record.deadline["endInstant"] == clock.now() + 1800
    assert fake_redis.get("metrics:sessions:started") == 1


def test_start_is_idempotent(orch, clock, scheduler):
    _start(orch, clock)
    scheduler.advance(10)
    again = _start(orch, clock)
    assert again["remainingSeconds"] == 1790


def test_unsupported_device_is_blocked_and_never_tracked(orch, clock, scheduler, fake_redis):
    with pytest.raises(SessionBlocked):
        _start(orch, clock, device=IPHONE)

    assert find_session("s1").blocked is True
    assert scheduler.active == 0
    with pytest.raises(SessionBlocked):
        orch.view("s1")
    with pytest.raises(SessionBlocked):
        _start(orch, clock)


def test_unknown_session_raises_not_found(orch):
    with pytest.raises(SessionNotFound):
        orch.view("missing")


def test_copy_event_forces_submission_and_dispatches_once(orch, clock, dispatcher, fake_redis):
    _start(orch, clock)

    out = orch.handle_event("s1", "copy")

    assert out["action"] == "violation"
    assert out["kind"] == "copy_attempt"
    assert out["preventDefault"] is True
    assert out["recorded"]["type"] == "copy_attempt"
    assert out["state"]["closed"] is True
    assert out["state"]["terminal"]["forcedByLockdown"] is True
    dispatcher.assert_called_once_with("s1")

    # Follow-up tab switch is discarded
    out = orch.handle_event("s1", "visibilitychange", {"hidden": True})
    assert out["recorded"] is None
    dispatcher.assert_called_once()

    record = find_session("s1")
    assert record.forcedByLockdown is True
    assert [v["type"] for v in record.terminal["violations"]] == ["copy_attempt"]
    assert fake_redis.hgetall("metrics:violations") == {"copy_attempt": "1"}
    assert fake_redis.hgetall("metrics:terminal") == {"forced_submission": "1"}


def test_time_up_dispatches_from_the_timer(orch, clock, scheduler, dispatcher):
    _start(orch, clock, minutes=1)
    scheduler.advance(60)

    dispatcher.assert_called_once_with("s1")
    record = find_session("s1")
    assert record.forcedByTimeout is True
    assert record.forcedByLockdown is False


def test_fullscreen_exit_countdown_and_result(orch, clock, scheduler, dispatcher):
    _start(orch, clock)
    orch.fullscreen_result("s1", True)
    scheduler.advance(6)

    out = orch.handle_event("s1", "fullscreenchange", {"fullscreen": False})
    assert out["action"] == "fullscreen_exited"
    assert out["recorded"]["type"] == "fullscreen_exit"
    assert out["state"]["fullscreenCountdown"] == 10

    # blur caused by the same exit
    out = orch.handle_event("s1", "blur")
    assert out["recorded"] is None

    scheduler.advance(10)
    dispatcher.assert_called_once_with("s1")
    assert find_session("s1").terminal["reason"] == "reentry_timeout"


def test_save_answers_and_manual_submit(orch, clock, dispatcher):
    _start(orch, clock)
    orch.save_answers("s1", [{"question_id": "q1", "answer": "a"}], [])

    view = orch.submit("s1", answers=[{"question_id": "q1", "answer": "b"}])

    assert view["closed"] is True
    assert view["terminal"] is None
    dispatcher.assert_called_once_with("s1")
    record = find_session("s1")
    assert record.closedReason == "manual"
    assert record.answers == [{"question_id": "q1", "answer": "b"}]
    assert record.forcedByTimeout is False and record.forcedByLockdown is False

    with pytest.raises(SessionClosed):
        orch.submit("s1")
    with pytest.raises(SessionClosed):
        orch.save_answers("s1", [], [])


def test_unmount_keeps_the_wall_clock_running(clock, scheduler, fake_redis, dispatcher):
    orch = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    _start(orch, clock, minutes=1)
    orch.unmount("s1")
    assert scheduler.active == 0

    clock.advance(120)
    # A fresh process (or a remount) rehydrates and expires on its first tick
    fresh = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    view = fresh.view("s1")
    assert view["remainingSeconds"] == 0
    assert view["terminal"]["outcome"] == "time_expired"
    dispatcher.assert_called_once_with("s1")


def test_rehydrated_strike_count_survives_restart(clock, scheduler, fake_redis, dispatcher):
    orch = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    _start(orch, clock)
    orch.handle_event("s1", "visibilitychange", {"hidden": True})
    orch.shutdown()

    clock.advance(30)
    fresh = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    assert fresh.resume_all() == ["s1"]
    fresh.handle_event("s1", "visibilitychange", {"hidden": True})
    dispatcher.assert_called_once_with("s1")
    assert find_session("s1").terminal["reason"] == "strike_limit"


def test_resume_all_skips_finished_sessions(clock, scheduler, fake_redis, dispatcher):
    orch = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    _start(orch, clock, session_id="done")
    orch.handle_event("done", "paste")
    orch.shutdown()

    fresh = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatcher)
    assert fresh.resume_all() == []


def test_persist_failure_does_not_stop_enforcement(orch, clock, dispatcher):
    _start(orch, clock)
    with patch("proctor.store.session_repo.save_session", side_effect=ConnectionError("redis down")):
        out = orch.handle_event("s1", "paste")
    assert out["state"]["closed"] is True
    dispatcher.assert_called_once_with("s1")


def test_dispatcher_errors_are_contained(clock, scheduler, fake_redis):
    orch = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=MagicMock(side_effect=RuntimeError("boom")))
    _start(orch, clock)
    out = orch.handle_event("s1", "cut")
    assert out["state"]["terminal"]["reason"] == "instant_violation"


def test_record_is_plain_json(orch, clock, fake_redis):
    _start(orch, clock)
    raw = fake_redis.get("proctor:session:s1")
    data = json.loads(raw)
    assert data["sessionId"] == "s1"
    assert data["monitor"]["environmentalStrikeCount"] == 0


@patch("proctor.submission.sender.send_submission_http", return_value=(True, 200, None, {"status": "completed"}))
def test_delivery_status_survives_later_persists(mock_http, clock, scheduler, fake_redis):
    from proctor.settings import settings
    from proctor.submission.dispatch import dispatch_submission

    orch = Orchestrator(clock=clock, scheduler=scheduler, dispatcher=dispatch_submission)
    with patch.object(settings, "FINAL_SUBMIT_MODE", "sync"), \
         patch.object(settings, "SUBMISSION_API_URL", "http://example.com/api"):
        _start(orch, clock)
        out = orch.handle_event("s1", "copy")

    assert out["state"]["submitStatus"] == "sent"
    assert out["state"]["confirmationStatus"] == "locked_out"
    mock_http.assert_called_once()

    orch.unmount("s1")
    orch.shutdown()

    record = find_session("s1")
    assert record.submitStatus == "sent"
    assert record.confirmationStatus == "locked_out"
    assert record.submitLedger["attempts"] == 1

    view = orch.view("s1")
    assert view["submitStatus"] == "sent"
    assert view["confirmationStatus"] == "locked_out"


def test_persist_keeps_dispatcher_fields(orch, clock):
    _start(orch, clock)
    stored = find_session("s1")
    stored.submitStatus = "queued"
    save_session(stored)

    orch.handle_event("s1", "visibilitychange", {"hidden": True})
    orch.unmount("s1")

    assert find_session("s1").submitStatus == "queued"
    assert find_session("s1").monitor["environmentalStrikeCount"] == 1


def test_finished_sessions_are_not_kept_live(orch, clock, scheduler):
    _start(orch, clock, session_id="a")
    _start(orch, clock, session_id="b")
    orch.handle_event("a", "paste")
    orch.submit("b")

    assert orch._live == {}
    # still served from the stored record
    assert orch.view("a")["terminal"]["reason"] == "instant_violation"
    assert orch.view("b")["closed"] is True
    assert orch._live == {}
    assert scheduler.active == 0
