"""
Submission dispatch: turns a finished session into exactly one delivery.

Called from a worker thread once the session record (terminal signal,
audit trail, latest answers) has been saved.
"""

from rq import Retry

from proctor.observability.logging import log
from proctor.settings import settings
from proctor.store.redis_conn import get_redis
from proctor.store.session_repo import load_session, save_session

DISPATCH_LATCH_TTL_SEC = 24 * 3600


def _claim_dispatch(session_id: str) -> bool:
    """SET NX latch so concurrent callers (timer + request) dispatch only once."""
    r = get_redis()
    return bool(r.set(f"proctor:dispatched:{session_id}", "1", nx=True, ex=DISPATCH_LATCH_TTL_SEC))


def dispatch_submission(session_id: str) -> str:
    """
    Deliver according to FINAL_SUBMIT_MODE:
    - "sync": send inline only
    - "rq": queue only
    - "hybrid": sync first (deadline-bounded), then queue as backup
    Returns the resulting submitStatus.
    """
    record = load_session(session_id)
    if record.submitStatus in ("queued", "sent"):
        return record.submitStatus
    if not _claim_dispatch(session_id):
        log(event="submission_dispatch_duplicate_skipped", sessionId=session_id)
        return record.submitStatus

    mode = (settings.FINAL_SUBMIT_MODE or "hybrid").lower()

    # Lazy imports: sender pulls in httpx/metrics, jobs pulls in sender
    from proctor.submission.sender import send_submission_sync
    from proctor.queue.jobs import send_submission_job
    from proctor.queue.rq_conn import get_queue

    if mode in ("sync", "hybrid"):
        ok = send_submission_sync(
            session_id,
            deadline_sec=float(settings.FINAL_SUBMIT_DEADLINE_SEC or 8.0),
            max_retries=int(settings.FINAL_SUBMIT_SYNC_RETRIES or 1),
        )
        if ok:
            return "sent"

    if mode in ("rq", "hybrid"):
        record = load_session(session_id)
        try:
            q = get_queue()
            job = q.enqueue(
                send_submission_job,
                session_id,
                retry=Retry(max=5, interval=[5, 15, 30, 60, 120]),
            )
            record.submitStatus = "queued"
            log(
                event="submission_enqueued",
                sessionId=session_id,
                rq_job_id=getattr(job, "id", "") or "",
                mode=mode,
            )
        except Exception as e:
            record.submitStatus = "failed"
            log(event="submission_enqueue_failed", sessionId=session_id, error=str(e)[:300])
        save_session(record)
        return record.submitStatus

    record = load_session(session_id)
    return record.submitStatus
