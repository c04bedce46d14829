# homematch/ratelimit.py
"""Fixed-window request rate limiting.

The counter store is injected so a shared backend can replace the default
per-process ``MemoryRateLimitStore`` without touching the limiter.
"""
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol, Tuple

from fastapi import HTTPException, Request

from . import config
from .utils import logger


class RateLimitStore(Protocol):
    def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Count one hit for ``key``; return ``(hits in window, window reset epoch)``."""
        ...


class MemoryRateLimitStore:
    def __init__(self, cleanup_threshold: int = 10_000, clock: Callable[[], float] = time.time):
        self.cleanup_threshold = cleanup_threshold
        self.clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = self.clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            if len(self._windows) > self.cleanup_threshold:
                self._cleanup(now)
            return count, reset_at

    def _cleanup(self, now: float) -> None:
        for key in [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]:
            del self._windows[key]

    def __len__(self):
        return len(self._windows)


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitTier:
    points: int
    duration: int


TIERS = {
    "strict": RateLimitTier(10, 60),
    "standard": RateLimitTier(30, 60),
    "relaxed": RateLimitTier(100, 60),
    "auth": RateLimitTier(5, 15 * 60),
    "testing": RateLimitTier(1000, 60),
}


class RateLimiter:
    def __init__(self, store: RateLimitStore, points: int, duration: int, prefix: str = "rl"):
        self.store = store
        self.points = points
        self.duration = duration
        self.prefix = prefix

    def check(self, identifier: str) -> RateLimitResult:
        count, reset_at = self.store.increment(f"{self.prefix}:{identifier}", self.duration)
        return RateLimitResult(
            success=count <= self.points,
            limit=self.points,
            remaining=max(0, self.points - count),
            reset_at=reset_at,
        )


def client_identifier(request: Request, user_id: Optional[str] = None) -> str:
    if user_id:
        return f"user_{user_id}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")
    return f"ip_{ip}"


_store: RateLimitStore = MemoryRateLimitStore()
_limiters: Dict[str, RateLimiter] = {}


def set_store(store: RateLimitStore) -> None:
    global _store
    _store = store
    _limiters.clear()


def get_limiter(tier: str) -> RateLimiter:
    if config.TEST_MODE:
        tier = "testing"
    if tier not in _limiters:
        t = TIERS[tier]
        _limiters[tier] = RateLimiter(_store, t.points, t.duration, prefix=f"rl_{tier}")
    return _limiters[tier]


def rate_limit(tier: str = "standard"):
    """FastAPI dependency enforcing ``tier``; uses ``request.state.user`` when auth ran first."""
    if tier not in TIERS:
        raise ValueError(f"Unknown rate limit tier: {tier!r}")

    def dependency(request: Request) -> None:
        user = getattr(request.state, "user", None)
        identifier = client_identifier(request, (user or {}).get("id"))
        limiter = get_limiter(tier)
        try:
            result = limiter.check(identifier)
        except Exception as e:
            # a broken counter store must not take the API down
            logger.error("Rate limit check failed, allowing request: %s", e)
            return
        if result.success:
            return

        retry_after = max(1, math.ceil(result.reset_at - time.time()))
        reset_iso = datetime.fromtimestamp(result.reset_at, tz=timezone.utc).isoformat()
        logger.warning("Rate limit exceeded for %s on tier %s", identifier, tier)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please try again later.",
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": reset_iso,
            },
        )

    return dependency
