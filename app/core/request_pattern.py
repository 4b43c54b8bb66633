"""
Request-pattern tracker: per-session timing history.

For every analysis call we append a timestamp to the session's history
(last N, default 10) and derive:
  - frequency            = samples / span_seconds     (needs ≥ 2 samples)
  - interval variance    = population variance of inter-arrival gaps, ms²
  - is_rhythmic          = variance below a low-jitter floor (needs ≥ 6 samples)

Concurrency:
  - one lock per session guards its read-modify-write
  - a short map lock guards lookup, LRU order and eviction only
So different sessions never wait on each other's computation.

Memory: idle sessions are swept after `ttl_seconds`; the map is also capped
at `max_sessions` (least recently touched evicted first).
"""

import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from statistics import pvariance
from typing import Callable

from app.config import Settings, get_settings

import structlog

logger = structlog.get_logger()

MIN_FREQUENCY_SAMPLES = 2
MIN_RHYTHM_SAMPLES = 6
RHYTHMIC_VARIANCE_MS2 = 100.0  # std dev under 10ms
MIN_SPAN_SECONDS = 0.001


@dataclass(frozen=True)
class RequestPattern:
    sample_count: int = 0
    span_seconds: float = 0.0
    frequency: float = 0.0  # requests / second
    interval_variance_ms: float | None = None
    is_rhythmic: bool = False


@dataclass
class SessionPatternState:
    session_id: str
    timestamps: deque = field(default_factory=deque)
    last_touched: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def summarize(timestamps: list[float]) -> RequestPattern:
    """Derive frequency / rhythm from an ordered list of timestamps (seconds)."""
    count = len(timestamps)
    if count < MIN_FREQUENCY_SAMPLES:
        return RequestPattern(sample_count=count)

    span = timestamps[-1] - timestamps[0]
    frequency = count / max(span, MIN_SPAN_SECONDS)

    intervals_ms = [(b - a) * 1000 for a, b in zip(timestamps, timestamps[1:])]
    variance = pvariance(intervals_ms) if len(intervals_ms) >= 2 else None
    is_rhythmic = (
        count >= MIN_RHYTHM_SAMPLES
        and variance is not None
        and variance < RHYTHMIC_VARIANCE_MS2
    )

    return RequestPattern(
        sample_count=count,
        span_seconds=round(span, 6),
        frequency=round(frequency, 3),
        interval_variance_ms=round(variance, 3) if variance is not None else None,
        is_rhythmic=is_rhythmic,
    )


class RequestPatternTracker:
    def __init__(
        self,
        history_size: int = 10,
        ttl_seconds: float = 3600,
        max_sessions: int = 100_000,
        clock: Callable[[], float] = time.time,
    ):
        self.history_size = history_size
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: OrderedDict[str, SessionPatternState] = OrderedDict()
        self._map_lock = threading.Lock()
        self._last_sweep = 0.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RequestPatternTracker":
        settings = settings or get_settings()
        return cls(
            history_size=settings.session_history_size,
            ttl_seconds=settings.session_ttl_seconds,
            max_sessions=settings.max_tracked_sessions,
        )

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._sessions)

    def record(self, session_id: str, now: float | None = None) -> RequestPattern:
        """Append `now` to the session's history and summarize it. Never raises."""
        now = self._clock() if now is None else now
        state = self._touch(session_id, now)

        with state.lock:
            state.timestamps.append(now)
            # Out-of-order beacons (retries) must not produce negative spans
            ordered = sorted(state.timestamps)
            return summarize(ordered)

    def _touch(self, session_id: str, now: float) -> SessionPatternState:
        with self._map_lock:
            if now - self._last_sweep >= min(self.ttl_seconds, 60):
                self._evict_expired_locked(now)
                self._last_sweep = now

            state = self._sessions.get(session_id)
            if state is None:
                state = SessionPatternState(
                    session_id=session_id,
                    timestamps=deque(maxlen=self.history_size),
                )
                self._sessions[session_id] = state
                while len(self._sessions) > self.max_sessions:
                    evicted_id, _ = self._sessions.popitem(last=False)
                    logger.debug("session_history_evicted", session_id=evicted_id, reason="capacity")
            else:
                self._sessions.move_to_end(session_id)
            state.last_touched = now
            return state

    def evict_expired(self, now: float | None = None) -> int:
        """Drop sessions idle for longer than ttl. Returns number removed."""
        now = self._clock() if now is None else now
        with self._map_lock:
            return self._evict_expired_locked(now)

    def _evict_expired_locked(self, now: float) -> int:
        cutoff = now - self.ttl_seconds
        removed = 0
        # OrderedDict is kept in touch order: stop at the first fresh entry
        while self._sessions:
            session_id, state = next(iter(self._sessions.items()))
            if state.last_touched >= cutoff:
                break
            del self._sessions[session_id]
            removed += 1
        if removed:
            logger.info("session_histories_evicted", count=removed)
        return removed
