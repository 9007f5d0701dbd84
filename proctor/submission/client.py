import time
from typing import Any, Dict, Optional, Tuple

import httpx

from proctor.observability.logging import log
from proctor.settings import settings


def submission_url(submission_id: str) -> str:
    base = (settings.SUBMISSION_API_URL or "").rstrip("/")
    return f"{base}/submissions/{submission_id}/quiz"


def send_submission_http(
    submission_id: str,
    payload: dict,
    headers: Dict[str, str],
    timeout: float = 5.0,
) -> Tuple[bool, int, Optional[str], Optional[Dict[str, Any]]]:
    """
    Isolated delivery: one POST, no retries, never raises.
    Returns (success, status_code, error, response_json).
    """
    url = submission_url(submission_id)
    start = time.time()
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, json=payload, headers=headers)
        elapsed_ms = int((time.time() - start) * 1000)

        body = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = None

        if 200 <= resp.status_code < 300:
            log(event="submission_http_ok", submissionId=submission_id, statusCode=resp.status_code, elapsedMs=elapsed_ms)
            return True, resp.status_code, None, body

        log(
            event="submission_http_non2xx",
            submissionId=submission_id,
            statusCode=resp.status_code,
            elapsedMs=elapsed_ms,
            responseText=(resp.text or "")[:300],
        )
        return False, resp.status_code, f"non_2xx:{resp.status_code}", body
    except httpx.HTTPError as e:
        elapsed_ms = int((time.time() - start) * 1000)
        log(
            event="submission_http_exception",
            submissionId=submission_id,
            elapsedMs=elapsed_ms,
            errorType=type(e).__name__,
            error=str(e)[:300],
        )
        return False, 0, f"{type(e).__name__}:{str(e)[:200]}", None
