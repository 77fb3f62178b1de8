"""
MathMentor Scheduling Backend — Rate Limiting Middleware
==========================================================

What:  Per-actor sliding window rate limiter.
Why:   A misbehaving client retrying a full class in a tight loop would
       hammer the seat ledger row for every other student.
How:   Keys requests by X-User-Id (set by the auth gateway), falling back to
       the client IP for anonymous traffic, and counts timestamps inside the
       last `rate_limit_window` seconds.

Algorithm: Sliding Window Counter
    1. Each key gets a list of request timestamps
    2. On each request, drop timestamps older than the window
    3. If remaining count >= limit, reject with 429
    4. Otherwise record the current timestamp and allow through

Deployment note:
    State is in-process. With several workers each one enforces its own
    window; a shared store (Redis) would be needed for a global limit.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings
from app.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """
    Counts hits per key within a trailing window.

    `hit(key)` records a request or raises RateLimitExceededError with the
    number of seconds until the oldest hit leaves the window.
    """

    CLEANUP_EVERY = 1000

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._since_cleanup = 0

    def hit(self, key: str) -> None:
        now = self._clock()
        window_start = now - self.window_seconds
        recent = [ts for ts in self._hits[key] if ts > window_start]

        if len(recent) >= self.max_requests:
            self._hits[key] = recent
            retry_after = int(recent[0] + self.window_seconds - now) + 1
            raise RateLimitExceededError(retry_after=retry_after, context={"key": key})

        recent.append(now)
        self._hits[key] = recent

        self._since_cleanup += 1
        if self._since_cleanup >= self.CLEANUP_EVERY:
            self._since_cleanup = 0
            self._cleanup(window_start)

    def _cleanup(self, window_start: float) -> None:
        inactive = [k for k, ts in self._hits.items() if not ts or ts[-1] <= window_start]
        for key in inactive:
            del self._hits[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit keys", len(inactive))


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies SlidingWindowRateLimiter to every request outside EXCLUDED_PATHS.

    Response on rate limit:
        HTTP 429 with Retry-After and the standard error envelope
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, limiter: Optional[SlidingWindowRateLimiter] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.limiter = limiter or SlidingWindowRateLimiter(
            settings.rate_limit_requests, settings.rate_limit_window
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        key = self._key_for(request)
        try:
            self.limiter.hit(key)
        except RateLimitExceededError as exc:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                key,
                self.limiter.max_requests,
                self.limiter.window_seconds,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": exc.message,
                    "code": exc.code,
                    "details": {"retry_after": exc.retry_after},
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        return await call_next(request)

    @staticmethod
    def _key_for(request: Request) -> str:
        user_id = request.headers.get("X-User-Id")
        if user_id:
            return f"user:{user_id}"
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        return f"ip:{client_ip}"
