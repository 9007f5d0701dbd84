"""
Observability Metrics
---------------------
Lightweight Redis counters consumed by /admin/metrics. The orchestrator
wraps its calls so a Redis hiccup never reaches the enforcement path.
"""
from __future__ import annotations
import time
from statistics import median
from typing import List

from proctor.store.redis_conn import get_redis

K_VIOLATIONS = "metrics:violations"                    # HINCRBY kind
K_TERMINAL = "metrics:terminal"                        # HINCRBY outcome
K_SESSIONS_STARTED = "metrics:sessions:started"        # INCR
K_SESSIONS_BLOCKED = "metrics:sessions:blocked"        # INCR

K_SUB_LAT = "metrics:submission:latencies"             # LPUSH ms
K_SUB_ATT = "metrics:submission:attempts"              # INCR
K_SUB_OK = "metrics:submission:delivered"              # INCR
K_SUB_FAIL_RECENT = "metrics:submission:failed_recent" # LPUSH sessionId (trim window)

_MAX_SAMPLES = 500

def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])

def increment_violation(kind: str) -> None:
    r = get_redis()
    r.hincrby(K_VIOLATIONS, kind, 1)

def increment_terminal(outcome: str) -> None:
    r = get_redis()
    r.hincrby(K_TERMINAL, outcome, 1)

def increment_session_started() -> None:
    r = get_redis()
    r.incr(K_SESSIONS_STARTED, 1)

def increment_session_blocked() -> None:
    r = get_redis()
    r.incr(K_SESSIONS_BLOCKED, 1)

def increment_submission_attempt() -> None:
    r = get_redis()
    r.incr(K_SUB_ATT, 1)

def increment_submission_delivered() -> None:
    r = get_redis()
    r.incr(K_SUB_OK, 1)

def record_submission_latency(ms: int) -> None:
    r = get_redis()
    r.lpush(K_SUB_LAT, int(ms))
    r.ltrim(K_SUB_LAT, 0, _MAX_SAMPLES - 1)

def record_failed_submission(session_id: str) -> None:
    """Track recent failures for incident attachments."""
    if not session_id:
        return
    r = get_redis()
    r.lpush(K_SUB_FAIL_RECENT, session_id)
    r.ltrim(K_SUB_FAIL_RECENT, 0, 49)  # keep last 50

def _read_latency_list() -> List[float]:
    r = get_redis()
    out: List[float] = []
    for x in r.lrange(K_SUB_LAT, 0, _MAX_SAMPLES - 1) or []:
        try:
            out.append(float(x) / 1000.0)  # seconds
        except (TypeError, ValueError):
            continue
    return out

def get_metrics_snapshot() -> dict:
    r = get_redis()
    latencies = _read_latency_list()
    attempts = int(r.get(K_SUB_ATT) or 0)
    delivered = int(r.get(K_SUB_OK) or 0)
    rate = (delivered / attempts) * 100.0 if attempts > 0 else 0.0
    return {
        "sessions_started": int(r.get(K_SESSIONS_STARTED) or 0),
        "sessions_blocked": int(r.get(K_SESSIONS_BLOCKED) or 0),
        "violations_by_kind": {k: int(v) for k, v in (r.hgetall(K_VIOLATIONS) or {}).items()},
        "terminal_by_outcome": {k: int(v) for k, v in (r.hgetall(K_TERMINAL) or {}).items()},
        "submission_attempts": attempts,
        "submission_delivered": delivered,
        "submission_success_rate": round(rate, 3),
        "p50_submission_latency": round(median(latencies), 3) if latencies else 0.0,
        "p95_submission_latency": round(_percentile(latencies, 0.95), 3),
        "recent_failed_submissions": list(r.lrange(K_SUB_FAIL_RECENT, 0, 19) or []),
        "snapshot_at": int(time.time()),
    }
