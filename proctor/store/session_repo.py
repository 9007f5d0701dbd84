import inspect
import json
import time
from typing import Optional

from proctor.observability.logging import log
from proctor.settings import settings
from proctor.store.models import SessionRecord
from proctor.store.redis_conn import get_redis
from proctor.utils.exceptions import SessionNotFound

PREFIX = "proctor:session:"


def _key(session_id: str) -> str:
    return f"{PREFIX}{session_id}"


def _filter_record_kwargs(data: dict) -> dict:
    """
    Drop unknown fields so SessionRecord(**kwargs) never explodes
    """
    sig = inspect.signature(SessionRecord)
    allowed = set(sig.parameters.keys())
    dropped = [k for k in data.keys() if k not in allowed]
    if dropped:
        log(event="session_record_fields_dropped", fields=dropped)
    return {k: v for k, v in data.items() if k in allowed}


def find_session(session_id: str) -> Optional[SessionRecord]:
    r = get_redis()
    raw = r.get(_key(session_id))
    if not raw:
        return None
    data = json.loads(raw)
    return SessionRecord(**_filter_record_kwargs(data))


def load_session(session_id: str) -> SessionRecord:
    record = find_session(session_id)
    if record is None:
        raise SessionNotFound(session_id)
    return record


def save_session(record: SessionRecord) -> None:
    r = get_redis()
    record.lastUpdatedAtEpoch = int(time.time())
    data = record.__dict__.copy()
    r.set(_key(record.sessionId), json.dumps(data), ex=int(settings.SESSION_TTL_SEC))


def list_session_ids(limit: int = 500) -> list:
    """Ids of stored sessions (used to rehydrate live sessions after a restart)."""
    r = get_redis()
    out = []
    for key in r.scan_iter(match=f"{PREFIX}*", count=100):
        out.append(key[len(PREFIX):])
        if len(out) >= limit:
            break
    return out
