"""
In-memory rate limiting for payment creation and rate refreshes.

Counts hits per (client IP, route) over a sliding window. State is per
process: each worker enforces its own window.
"""
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window hit counter; `clock` is injectable for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    def _window(self, key: str, window_seconds: int) -> Deque[float]:
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        cutoff = self._clock() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """True if the request is allowed (and counts it), False if limited."""
        hits = self._window(key, window_seconds)
        if len(hits) >= max_requests:
            return False
        hits.append(self._clock())
        self._hits[key] = hits
        return True

    def tracked_keys(self) -> int:
        return len(self._hits)

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        return max(0, max_requests - len(self._window(key, window_seconds)))

    def reset(self) -> None:
        self._hits.clear()


limiter = RateLimiter()


def _client_key(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"{client_ip}:{request.url.path}"


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/{provider}")
        async def create_payment(..., _=Depends(rate_limit(20, 60))):
            ...
    """
    async def _check_rate_limit(request: Request):
        key = _client_key(request)
        if limiter.check(key, max_requests, window_seconds):
            return
        logger.warning(f"Rate limit exceeded: {key} ({max_requests}/{window_seconds}s)")
        error = RateLimitError(
            f"Rate limit exceeded. Maximum {max_requests} requests "
            f"per {window_seconds} seconds. Try again later.",
            details={"limit": max_requests, "windowSeconds": window_seconds},
        )
        error.headers = {
            "Retry-After": str(window_seconds),
            "X-RateLimit-Limit": str(max_requests),
            "X-RateLimit-Remaining": str(limiter.remaining(key, max_requests, window_seconds)),
        }
        raise error

    return _check_rate_limit
