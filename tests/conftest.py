import fnmatch
from typing import Callable, List, Optional
from unittest.mock import patch

import pytest

T0 = 1_700_000_000.0  # arbitrary fixed epoch for deterministic tests


class FakeClock:
    def __init__(self, t: float = T0):
        self.t = float(t)

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class _Timer:
    def __init__(self, due: float, seq: int, fn: Callable[[], None], interval: Optional[float]):
        self.due = due
        self.seq = seq
        self.fn = fn
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic stand-in for AsyncioScheduler driven by a FakeClock.

    advance(): time flows normally; timers fire at their due instants.
    freeze(): the process is suspended; the clock jumps and nothing runs
    until run_due() fires each overdue timer once, like an event loop waking up.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self._timers: List[_Timer] = []
        self._seq = 0

    def _add(self, delay: float, fn, interval):
        self._seq += 1
        timer = _Timer(self.clock.now() + max(0.0, delay), self._seq, fn, interval)
        self._timers.append(timer)
        return timer

    def call_later(self, delay, fn):
        return self._add(delay, fn, None)

    def call_every(self, interval, fn):
        return self._add(interval, fn, interval)

    @property
    def active(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def _fire(self, timer: _Timer) -> None:
        timer.fn()
        if timer.interval is not None and not timer.cancelled:
            timer.due = self.clock.now() + timer.interval
        else:
            timer.cancelled = True
        self._timers = [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.clock.now() + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.t = max(self.clock.t, timer.due)
            self._fire(timer)
        self.clock.t = max(self.clock.t, target)

    def freeze(self, seconds: float) -> None:
        self.clock.advance(seconds)

    def run_due(self) -> None:
        now = self.clock.now()
        for timer in sorted(self._timers, key=lambda t: (t.due, t.seq)):
            if not timer.cancelled and timer.due <= now:
                self._fire(timer)


class FakeRedis:
    """Dict-backed subset of the redis-py client used by the service."""

    def __init__(self):
        self.kv = {}
        self.hashes = {}
        self.lists = {}

    def get(self, key):
        return self.kv.get(key)

    def set(self, key, value, ex=None, px=None, nx=False):
        if nx and key in self.kv:
            return None
        self.kv[key] = value
        return True

    def incr(self, key, amount=1):
        self.kv[key] = int(self.kv.get(key) or 0) + amount
        return self.kv[key]

    def hincrby(self, key, field, amount=1):
        h = self.hashes.setdefault(key, {})
        h[field] = int(h.get(field) or 0) + amount
        return h[field]

    def hgetall(self, key):
        return {k: str(v) for k, v in self.hashes.get(key, {}).items()}

    def lpush(self, key, *values):
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    def ltrim(self, key, start, end):
        lst = self.lists.get(key, [])
        self.lists[key] = lst[start:end + 1]

    def lrange(self, key, start, end):
        return list(self.lists.get(key, [])[start:end + 1])

    def scan_iter(self, match="*", count=None):
        return iter([k for k in list(self.kv.keys()) if fnmatch.fnmatch(k, match)])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def fake_redis():
    r = FakeRedis()
    with patch("proctor.store.session_repo.get_redis", return_value=r), \
         patch("proctor.observability.metrics.get_redis", return_value=r), \
         patch("proctor.submission.dispatch.get_redis", return_value=r):
        yield r
