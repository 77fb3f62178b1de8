"""
Tests for the sliding window rate limiter and its middleware.

What we test:
    ✅ Requests within the limit pass; the next one raises with Retry-After
    ✅ The window slides: old hits expire
    ✅ Keys are independent (per user, falling back to IP)
    ✅ Middleware answers 429 with the error envelope and skips /health
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.exceptions import RateLimitExceededError
from app.middleware.rate_limit import RateLimitMiddleware, SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestSlidingWindowRateLimiter:
    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=self.clock)

    def test_limit_then_reject(self):
        for _ in range(3):
            self.limiter.hit("user:a")

        with pytest.raises(RateLimitExceededError) as exc_info:
            self.limiter.hit("user:a")
        assert exc_info.value.retry_after == 61
        assert exc_info.value.context["key"] == "user:a"

    def test_window_slides(self):
        for _ in range(3):
            self.limiter.hit("user:a")

        self.clock.now += 61
        self.limiter.hit("user:a")

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.hit("user:a")

        self.limiter.hit("user:b")
        self.limiter.hit("ip:127.0.0.1")

    def test_cleanup_drops_idle_keys(self):
        self.limiter.hit("user:idle")
        self.clock.now += 120
        self.limiter.CLEANUP_EVERY = 2
        self.limiter.hit("user:a")
        self.limiter.hit("user:a")

        assert "user:idle" not in self.limiter._hits


def _app(limiter: SlidingWindowRateLimiter) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


class TestRateLimitMiddleware:
    @pytest.mark.asyncio
    async def test_returns_429_envelope(self):
        app = _app(SlidingWindowRateLimiter(max_requests=2, window_seconds=60))
        headers = {"X-User-Id": "7b1f0c62-0000-4000-8000-000000000001"}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            assert (await client.get("/api/ping", headers=headers)).status_code == 200
            assert (await client.get("/api/ping", headers=headers)).status_code == 200
            response = await client.get("/api/ping", headers=headers)

            # Another actor is unaffected
            other = await client.get(
                "/api/ping", headers={"X-User-Id": "7b1f0c62-0000-4000-8000-000000000002"}
            )

        assert response.status_code == 429
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_health_is_never_limited(self):
        app = _app(SlidingWindowRateLimiter(max_requests=1, window_seconds=60))

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(5):
                assert (await client.get("/health")).status_code == 200
