import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from fastapi import Request

from .errors import RateLimitError


class RateLimiter:
    """In-memory sliding-window rate limiter, one window per client key."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)

    def _live(self, key: str, now: float) -> List[float]:
        stamps = [ts for ts in self._requests[key] if now - ts < self.window_seconds]
        self._requests[key] = stamps
        return stamps

    def is_allowed(self, key: str) -> bool:
        now = self._clock()
        stamps = self._live(key, now)
        if len(stamps) >= self.max_requests:
            return False
        stamps.append(now)
        return True

    def remaining(self, key: str) -> int:
        return max(0, self.max_requests - len(self._live(key, self._clock())))

    def reset(self) -> None:
        self._requests.clear()


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded: Optional[str] = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def rate_limited(limiter: RateLimiter):
    """Route dependency that rejects the caller with 429 once over the limit."""

    async def check(request: Request) -> None:
        if not limiter.is_allowed(client_key(request)):
            raise RateLimitError("Rate limit exceeded")

    return check
