import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Generic, Hashable, Optional, TypeVar

Clock = Callable[[], float]
V = TypeVar("V")


@dataclass
class RateLimitConfig:
    max_requests: int = 100
    window_seconds: int = 3600


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: float
    limit: int
    retry_after: int = 0  # whole seconds until reset; only set on rejection


@dataclass
class RateWindow:
    created_at: float
    timestamps: Deque[float] = field(default_factory=deque)


class SlidingWindowRateLimiter:
    """
    In-memory, per-process, per-client sliding window rate limiter.
    Every call is compared against the trailing window ending now,
    not against fixed buckets. State is per instance only.
    """
    def __init__(self, cfg: RateLimitConfig, clock: Clock = time.time):
        self.cfg = cfg
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, RateWindow] = {}

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._windows)

    def _prune(self, window: RateWindow, window_start: float) -> None:
        q = window.timestamps
        while q and q[0] <= window_start:
            q.popleft()

    def is_allowed(self, client_id: str) -> RateLimitDecision:
        limit = self.cfg.max_requests
        with self._lock:
            now = self._clock()
            window_start = now - self.cfg.window_seconds
            window = self._windows.get(client_id)
            if window is None:
                window = RateWindow(created_at=now)
                self._windows[client_id] = window

            self._prune(window, window_start)

            allowed = len(window.timestamps) < limit
            if allowed:
                window.timestamps.append(now)

            if window.timestamps:
                reset_time = window.timestamps[0] + self.cfg.window_seconds
            else:
                reset_time = now + self.cfg.window_seconds

            return RateLimitDecision(
                allowed=allowed,
                remaining=max(0, limit - len(window.timestamps)),
                reset_time=reset_time,
                limit=limit,
                retry_after=0 if allowed else max(1, math.ceil(reset_time - now)),
            )

    def sweep(self) -> int:
        """Drop clients with no requests left in the window. Returns how many were removed."""
        with self._lock:
            cutoff = self._clock() - self.cfg.window_seconds
            stale = []
            for client_id, window in self._windows.items():
                self._prune(window, cutoff)
                if not window.timestamps and window.created_at <= cutoff:
                    stale.append(client_id)
            for client_id in stale:
                del self._windows[client_id]
            return len(stale)


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    created_at: float
    expires_at: float


class TTLCache:
    """
    Simple in-memory TTL cache.

    Expired entries are dropped lazily on read and in bulk when the cache
    fills up. When still full, the entry inserted first is evicted
    (FIFO by creation time, not LRU).
    """
    def __init__(self, ttl_seconds: float = 300, max_items: int = 100, clock: Clock = time.time):
        self.ttl = ttl_seconds
        self.max_items = max_items
        self._clock = clock
        self._lock = threading.Lock()
        self._store: Dict[Hashable, CacheEntry[Any]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _live_entry(self, key: Hashable, now: float) -> Optional[CacheEntry[Any]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            self._store.pop(key, None)
            return None
        return entry

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry.value if entry is not None else None

    def has(self, key: Hashable) -> bool:
        with self._lock:
            return self._live_entry(key, self._clock()) is not None

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            now = self._clock()

            if key not in self._store and len(self._store) >= self.max_items:
                self._purge(now)
                if len(self._store) >= self.max_items:
                    oldest_key = min(self._store.items(), key=lambda kv: kv[1].created_at)[0]
                    self._store.pop(oldest_key, None)

            lifetime = self.ttl if ttl is None else ttl
            self._store[key] = CacheEntry(value=value, created_at=now, expires_at=now + lifetime)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [k for k, entry in self._store.items() if now >= entry.expires_at]
        for k in expired:
            del self._store[k]
        return len(expired)
