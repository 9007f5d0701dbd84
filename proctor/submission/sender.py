"""
Final Submission Sender
-----------------------
Delivers the answer set + audit trail to the submission API.

- send_submission_sync: inline, bounded by a strict deadline so a forced
  submission lands while the student is still on the page.
- deliver_submission: single attempt used by the RQ job; raises on failure
  so RQ's retry policy takes over.

Both are idempotent-friendly: a record whose submitStatus is already "sent"
is never posted again, and every attempt carries the same Idempotency-Key.
"""

from __future__ import annotations

import time

from proctor.observability import metrics
from proctor.observability.logging import log
from proctor.settings import settings
from proctor.store.models import SessionRecord
from proctor.store.session_repo import load_session, save_session
from proctor.submission.client import send_submission_http
from proctor.submission.payloads import build_submission_payload, confirmation_status
from proctor.utils.exceptions import SubmissionError


def _headers(record: SessionRecord) -> dict:
    return {
        "Idempotency-Key": f"{record.submissionId}:quiz",
        "Content-Type": "application/json",
    }


def _record_attempt(record: SessionRecord, *, success: bool, code: int, error, started_ms: int) -> None:
    ledger = record.submitLedger or {"attempts": 0, "history": []}
    attempt = int(ledger.get("attempts", 0)) + 1
    ledger.setdefault("history", []).append(
        {
            "attempt": attempt,
            "ts": started_ms,
            "duration": int(time.time() * 1000) - started_ms,
            "code": code,
            "error": error,
            "success": success,
        }
    )
    ledger["attempts"] = attempt
    record.submitLedger = ledger


def _attempt(record: SessionRecord, timeout: float) -> bool:
    payload = build_submission_payload(record)
    started_ms = int(time.time() * 1000)
    metrics.increment_submission_attempt()
    success, code, error, body = send_submission_http(
        record.submissionId, payload, _headers(record), timeout=timeout
    )
    _record_attempt(record, success=success, code=code, error=error, started_ms=started_ms)
    if success:
        record.submitStatus = "sent"
        record.confirmationStatus = confirmation_status(record, body)
        metrics.increment_submission_delivered()
        metrics.record_submission_latency(int(time.time() * 1000) - started_ms)
    else:
        record.submitStatus = "failed"
    save_session(record)
    return success


def send_submission_sync(session_id: str, *, deadline_sec: float = 8.0, max_retries: int = 1) -> bool:
    """
    Try to POST the submission synchronously within deadline_sec.
    Returns True on success, False on failure (no raise).
    """
    if not settings.SUBMISSION_API_URL:
        log(event="submission_sync_skipped_no_url", sessionId=session_id)
        return False

    t0 = time.monotonic()
    deadline_sec = float(deadline_sec or 0.0)
    if deadline_sec <= 0:
        deadline_sec = 6.0

    record = load_session(session_id)
    if record.submitStatus == "sent":
        return True

    attempt = 0
    while attempt <= int(max_retries or 0):
        attempt += 1
        remaining = deadline_sec - (time.monotonic() - t0)
        if remaining <= 0:
            break

        # Per-attempt timeout: never exceed remaining time and never exceed configured timeout.
        per_try_timeout = min(float(settings.SUBMIT_TIMEOUT_SEC or 5), max(0.5, remaining))
        log(event="submission_sync_attempt", sessionId=session_id, attempt=attempt, timeoutSec=per_try_timeout)

        if _attempt(record, per_try_timeout):
            log(
                event="submission_sync_success",
                sessionId=session_id,
                confirmationStatus=record.confirmationStatus,
                elapsedMs=int((time.monotonic() - t0) * 1000),
            )
            return True

        # backoff lightly but respect deadline
        remaining2 = deadline_sec - (time.monotonic() - t0)
        if remaining2 <= 0:
            break
        time.sleep(min(0.15, max(0.0, remaining2)))

    metrics.record_failed_submission(session_id)
    log(event="submission_sync_failed", sessionId=session_id, attempts=attempt)
    return False


def deliver_submission(session_id: str) -> bool:
    """One delivery attempt for background workers. Raises SubmissionError on failure."""
    if not settings.SUBMISSION_API_URL:
        raise SubmissionError("SUBMISSION_API_URL is not set")

    record = load_session(session_id)
    if record.submitStatus == "sent":
        log(event="submission_already_sent", sessionId=session_id)
        return True

    if _attempt(record, float(settings.SUBMIT_TIMEOUT_SEC or 5)):
        return True
    metrics.record_failed_submission(session_id)
    raise SubmissionError(f"Submission delivery failed for session {session_id}")
