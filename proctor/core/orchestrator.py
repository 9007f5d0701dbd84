"""
Live session orchestration: the collaborator layer around the core.

Owns the in-process ProctorSession objects, persists every consequential
transition to Redis, and hands finished sessions to the submission
dispatcher. I/O failures here are logged and contained; they never stop
enforcement, which keeps running in memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from proctor.adapter.host_events import (
    FULLSCREEN_ENTERED,
    FULLSCREEN_EXITED,
    VIOLATION,
    HostEventTranslator,
)
from proctor.core.deadline import DeadlineState
from proctor.core.entry_gate import BLOCKED_MESSAGE, DeviceProfile, is_lockdown_unsupported
from proctor.core.monitor import MonitorState
from proctor.core.session import ProctorSession, TerminalSignal
from proctor.core.timers import AsyncioScheduler, Scheduler
from proctor.observability import metrics
from proctor.observability.logging import log
from proctor.store import session_repo
from proctor.store.models import SessionRecord
from proctor.utils.exceptions import SessionBlocked, SessionClosed, SessionNotFound
from proctor.utils.time import SystemClock, now_ms


# SessionRecord fields owned by proctor.submission
DELIVERY_FIELDS = ("submitStatus", "confirmationStatus", "submitLedger")


@dataclass
class LiveSession:
    session: ProctorSession
    translator: HostEventTranslator
    record: SessionRecord


def _safe_metric(fn: Callable, *args) -> None:
    try:
        fn(*args)
    except Exception as e:
        log(event="metric_write_failed", metric=getattr(fn, "__name__", "?"), error=str(e)[:200])


def _default_dispatcher(session_id: str) -> None:
    from proctor.submission.dispatch import dispatch_submission

    dispatch_submission(session_id)


class Orchestrator:
    def __init__(
        self,
        clock=None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or AsyncioScheduler()
        self.dispatcher = dispatcher or _default_dispatcher
        self._live: Dict[str, LiveSession] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_session(
        self,
        session_id: str,
        *,
        submission_id: str,
        started_at: float,
        duration_minutes: float,
        device: Optional[DeviceProfile] = None,
    ) -> Dict[str, Any]:
        if session_id in self._live:
            return self.view(session_id)

        existing = session_repo.find_session(session_id)
        if existing is not None:
            if existing.blocked:
                raise SessionBlocked(BLOCKED_MESSAGE)
            return self._view_of(self._rehydrate(existing))

        record = SessionRecord(
            sessionId=session_id,
            submissionId=submission_id,
            startedAt=float(started_at),
            durationMinutes=float(duration_minutes),
            createdAtMs=now_ms(),
        )

        if is_lockdown_unsupported(device):
            record.blocked = True
            session_repo.save_session(record)
            _safe_metric(metrics.increment_session_blocked)
            log(event="session_blocked_unsupported_device", sessionId=session_id,
                userAgent=(device.user_agent or "")[:120] if device else "")
            raise SessionBlocked(BLOCKED_MESSAGE)

        live = self._build(record)
        self._live[session_id] = live
        self._persist(session_id)
        live.session.start()
        _safe_metric(metrics.increment_session_started)
        log(
            event="session_started",
            sessionId=session_id,
            submissionId=submission_id,
            durationMinutes=duration_minutes,
            endInstant=live.session.tracker.end_instant,
        )
        return self._view_of(live)

    def unmount(self, session_id: str) -> None:
        """
        The hosting view went away. Timers stop, the record stays; clocks are
        wall-clock anchored, so nothing is paused by leaving.
        """
        live = self._live.pop(session_id, None)
        if live is None:
            return
        try:
            live.session.teardown()
        except Exception as e:
            log(event="session_teardown_failed", sessionId=session_id, error=str(e)[:200])
        self._persist_record(live)
        log(event="session_unmounted", sessionId=session_id)

    def resume_all(self) -> List[str]:
        """Rehydrate stored sessions that are still running (after a restart)."""
        resumed = []
        for session_id in session_repo.list_session_ids():
            if session_id in self._live:
                continue
            record = session_repo.find_session(session_id)
            if record is None or record.blocked or record.terminal or record.closedReason:
                continue
            self._rehydrate(record)
            resumed.append(session_id)
        if resumed:
            log(event="sessions_resumed", count=len(resumed))
        return resumed

    def shutdown(self) -> None:
        for session_id in list(self._live.keys()):
            self.unmount(session_id)

    # ------------------------------------------------------------------
    # Host input
    # ------------------------------------------------------------------
    def get(self, session_id: str) -> LiveSession:
        live = self._live.get(session_id)
        if live is not None:
            return live
        record = session_repo.find_session(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        if record.blocked:
            raise SessionBlocked(BLOCKED_MESSAGE)
        return self._rehydrate(record)

    def view(self, session_id: str) -> Dict[str, Any]:
        live = self.get(session_id)
        live.session.poll()
        return self._view_of(live)

    def handle_event(self, session_id: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        live = self.get(session_id)
        session = live.session
        session.poll()

        translation = live.translator.translate(event_type, data)
        recorded = None
        if translation.action == VIOLATION:
            recorded = session.report(translation.kind)
        elif translation.action == FULLSCREEN_EXITED:
            recorded = session.fullscreen_changed(False)
        elif translation.action == FULLSCREEN_ENTERED:
            session.fullscreen_changed(True)

        if recorded is not None:
            _safe_metric(metrics.increment_violation, recorded.kind.value)

        return {
            "action": translation.action,
            "kind": translation.kind.value if translation.kind else None,
            "recorded": recorded.to_dict() if recorded else None,
            "preventDefault": translation.prevent_default,
            "state": self._view_of(live),
        }

    def fullscreen_result(self, session_id: str, granted: bool) -> Dict[str, Any]:
        live = self.get(session_id)
        live.session.poll()
        live.session.fullscreen_request_result(granted)
        return self._view_of(live)

    def save_answers(self, session_id: str, answers: List[Dict[str, str]], outline_responses: List[Dict[str, str]]) -> None:
        live = self.get(session_id)
        live.session.poll()
        if live.session.closed:
            raise SessionClosed(session_id)
        live.record.answers = list(answers)
        live.record.outlineResponses = list(outline_responses)
        live.record.answersUpdatedAtMs = now_ms()
        self._persist(session_id)

    def submit(
        self,
        session_id: str,
        answers: Optional[List[Dict[str, str]]] = None,
        outline_responses: Optional[List[Dict[str, str]]] = None,
    ) -> Dict[str, Any]:
        """Student pressed Submit. Not a terminal signal: neither forced flag is set."""
        live = self.get(session_id)
        live.session.poll()
        if live.session.closed:
            raise SessionClosed(session_id)
        if answers is not None:
            live.record.answers = list(answers)
        if outline_responses is not None:
            live.record.outlineResponses = list(outline_responses)
        live.record.closedReason = "manual"
        live.session.finish("manual")
        self._persist(session_id)
        self._dispatch(session_id)
        self._evict(session_id)
        return self._view_of(live)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _build(self, record: SessionRecord) -> LiveSession:
        session_id = record.sessionId
        session = ProctorSession(
            session_id,
            self.clock,
            self.scheduler,
            started_at=record.startedAt,
            duration_minutes=record.durationMinutes,
            on_terminal=lambda signal: self._on_terminal(session_id, signal),
            on_change=lambda: self._persist(session_id),
            deadline_state=DeadlineState.from_dict(record.deadline) if record.deadline else None,
            monitor_state=MonitorState.from_dict(record.monitor) if record.monitor else None,
            terminal=TerminalSignal.from_dict(record.terminal) if record.terminal else None,
        )
        return LiveSession(session=session, translator=HostEventTranslator(), record=record)

    def _rehydrate(self, record: SessionRecord) -> LiveSession:
        live = self._build(record)
        if live.session.closed:
            # Finished sessions are served from the record, never kept live
            return live
        self._live[record.sessionId] = live
        live.session.start()
        log(event="session_rehydrated", sessionId=record.sessionId)
        return live

    def _evict(self, session_id: str) -> None:
        live = self._live.pop(session_id, None)
        if live is not None:
            live.session.teardown()
            log(event="session_evicted", sessionId=session_id)

    def _view_of(self, live: LiveSession) -> Dict[str, Any]:
        if live.session.closed:
            self._sync_delivery(live.record)
        out = live.session.view()
        out["submissionId"] = live.record.submissionId
        out["submitStatus"] = live.record.submitStatus
        out["confirmationStatus"] = live.record.confirmationStatus
        return out

    def _on_terminal(self, session_id: str, signal: TerminalSignal) -> None:
        _safe_metric(metrics.increment_terminal, signal.outcome.value)
        self._persist(session_id)
        self._dispatch(session_id)
        self._evict(session_id)

    def _dispatch(self, session_id: str) -> None:
        try:
            self.dispatcher(session_id)
        except Exception as e:
            log(event="submission_dispatch_failed", sessionId=session_id, error=str(e)[:300])

    def _persist(self, session_id: str) -> None:
        live = self._live.get(session_id)
        if live is None:
            return
        self._persist_record(live)

    def _sync_delivery(self, record: SessionRecord) -> None:
        """Pull the dispatcher-owned fields from the stored record into ours."""
        try:
            stored = session_repo.find_session(record.sessionId)
        except Exception as e:
            log(event="session_delivery_sync_failed", sessionId=record.sessionId, error=str(e)[:300])
            return
        if stored is None:
            return
        for name in DELIVERY_FIELDS:
            setattr(record, name, getattr(stored, name))

    def _persist_record(self, live: LiveSession) -> None:
        session = live.session
        record = live.record
        # Delivery status is written by the dispatcher; never overwrite it
        self._sync_delivery(record)
        record.deadline = session.tracker.state.to_dict()
        record.monitor = session.monitor.state.to_dict()
        record.terminal = session.terminal.to_dict() if session.terminal else None
        try:
            session_repo.save_session(record)
        except Exception as e:
            log(event="session_persist_failed", sessionId=record.sessionId, error=str(e)[:300])
