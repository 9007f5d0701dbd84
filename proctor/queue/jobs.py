from proctor.observability.logging import log
from proctor.submission.sender import deliver_submission

def send_submission_job(session_id: str):
    """
    Background job: deliver the final submission for a session.
    Raising lets RQ's Retry policy reschedule; the Idempotency-Key and the
    submitStatus guard prevent duplicate deliveries.
    """
    try:
        log(event="submission_job_start", sessionId=session_id)
        return deliver_submission(session_id)
    except Exception as e:
        log(event="submission_job_exception", sessionId=session_id, error=str(e))
        raise
