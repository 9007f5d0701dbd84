from typing import Any, Dict, Optional

from proctor.store.models import SessionRecord

COMPLETED = "completed"
LOCKED_OUT = "locked_out"


def build_submission_payload(record: SessionRecord) -> dict:
    """
    Body for POST /submissions/{submission_id}/quiz.
    The two forced flags are independent; neither is set for a
    student-initiated submission.
    """
    forced_by_timeout = record.forcedByTimeout
    forced_by_lockdown = record.forcedByLockdown
    # The terminal snapshot is the audit trail as of the forcing event
    if record.terminal is not None:
        events = list(record.terminal.get("violations") or [])
    else:
        events = record.violations
    return {
        "answers": [
            {"question_id": str(a.get("question_id") or ""), "answer": str(a.get("answer") or "")}
            for a in (record.answers or [])
        ],
        "outline_responses": [
            {"field_label": str(o.get("field_label") or ""), "response": str(o.get("response") or "")}
            for o in (record.outlineResponses or [])
        ],
        "lockdown_events": events,
        "was_forced": bool(forced_by_timeout or forced_by_lockdown),
        "forced_by_timeout": bool(forced_by_timeout),
        "forced_by_lockdown": bool(forced_by_lockdown),
    }


def confirmation_status(record: SessionRecord, response_body: Optional[Dict[str, Any]] = None) -> str:
    """
    What the confirmation view shows: a lockdown-forced submission is
    "locked_out" no matter what the submission API answered.
    """
    if record.forcedByLockdown:
        return LOCKED_OUT
    status = str((response_body or {}).get("status") or "").lower()
    if status == LOCKED_OUT:
        return LOCKED_OUT
    return COMPLETED
