from fastapi import APIRouter, Depends, HTTPException

from proctor.api.auth import require_admin
from proctor.store.session_repo import find_session
import proctor.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/sessions/{session_id}")
def get_session_snapshot(session_id: str, _=Depends(require_admin)):
    """Stored record: outcome, submission status, and the full audit trail."""
    s = find_session(session_id)
    if s is None:
        raise HTTPException(status_code=404, detail="Session not found")
    monitor = s.monitor or {}
    return {
        "sessionId": s.sessionId,
        "submissionId": s.submissionId,
        "blocked": bool(s.blocked),
        "startedAt": s.startedAt,
        "durationMinutes": s.durationMinutes,
        "terminal": s.terminal,
        "closedReason": s.closedReason,
        "forcedByTimeout": s.forcedByTimeout,
        "forcedByLockdown": s.forcedByLockdown,
        "environmentalStrikes": int(monitor.get("environmentalStrikeCount") or 0),
        "violations": s.violations,
        "submitStatus": s.submitStatus,
        "confirmationStatus": s.confirmationStatus,
        "submitLedger": s.submitLedger or {},
        "answersUpdatedAtMs": s.answersUpdatedAtMs,
    }


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    return metrics.get_metrics_snapshot()
