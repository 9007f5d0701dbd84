import time
from datetime import datetime, timezone
from typing import Union


class SystemClock:
    """
    Wall-clock reader used by the enforcement core.

    Returns epoch seconds (float). Deliberately not time.monotonic(): the
    anchors (quiz start, countdown start) are persisted and must survive a
    process restart, so they have to share an epoch with the host.
    """

    def now(self) -> float:
        return time.time()


def now_ms() -> int:
    return int(time.time() * 1000)

def parse_timestamp(ts: Union[int, float, str, None]) -> float:
    """
    Normalize a host-supplied timestamp to epoch seconds (float).
    Accepts:
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string: parsed via datetime.fromisoformat (supports trailing 'Z')
    Raises ValueError for anything else; a quiz start time is never guessed.
    """
    if isinstance(ts, bool) or ts is None:
        raise ValueError(f"invalid timestamp: {ts!r}")
    if isinstance(ts, (int, float)):
        v = float(ts)
        # Heuristic: if looks like milliseconds (>= 10^12), convert to seconds.
        return v / 1000.0 if v >= 10**12 else v
    if isinstance(ts, str):
        s = ts.strip()
        if not s:
            raise ValueError("empty timestamp")
        # Support Zulu time
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    raise ValueError(f"invalid timestamp: {ts!r}")

def to_iso(epoch_seconds: float) -> str:
    """Render epoch seconds as ISO-8601 UTC with millisecond precision and a 'Z' suffix."""
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
