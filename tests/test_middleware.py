"""
Tests for HTTP middleware.

Fixed-window rate limiting and proxy header handling.
"""

from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from alchemist.api.middleware import (
    FixedWindowRateLimiter,
    ProxyHeadersMiddleware,
    RateLimitMiddleware,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter:
    """Tests for the in-process rate limiter."""

    def test_allows_up_to_limit(self) -> None:
        limiter = FixedWindowRateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

        results = [limiter.acquire("1.2.3.4")[0] for _ in range(4)]

        assert results == [True, True, True, False]

    def test_window_resets(self) -> None:
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)

        assert limiter.acquire("1.2.3.4")[0]
        allowed, retry_after = limiter.acquire("1.2.3.4")
        assert not allowed
        assert retry_after == 60

        clock.now += 60
        assert limiter.acquire("1.2.3.4")[0]

    def test_clients_are_independent(self) -> None:
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

        assert limiter.acquire("1.1.1.1")[0]
        assert limiter.acquire("2.2.2.2")[0]
        assert not limiter.acquire("1.1.1.1")[0]


def build_app(max_requests: int = 2) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=900)
    app.add_middleware(ProxyHeadersMiddleware)

    @app.get("/api/ping")
    async def ping(request: Request) -> dict[str, str]:
        return {"scheme": request.url.scheme}

    @app.get("/metrics")
    async def metrics() -> dict[str, str]:
        return {"ok": "yes"}

    return app


class TestRateLimitMiddleware:
    """Tests for the middleware wired into an app."""

    async def test_limits_api_paths(self) -> None:
        async with AsyncClient(transport=ASGITransport(app=build_app()), base_url="http://test") as client:
            statuses = [(await client.get("/api/ping")).status_code for _ in range(3)]
            limited = await client.get("/api/ping")

        assert statuses == [200, 200, 429]
        assert limited.json()["detail"] == "Too many requests from this IP, please try again later."
        assert int(limited.headers["Retry-After"]) > 0

    async def test_other_paths_not_limited(self) -> None:
        async with AsyncClient(transport=ASGITransport(app=build_app(1)), base_url="http://test") as client:
            statuses = [(await client.get("/metrics")).status_code for _ in range(3)]

        assert statuses == [200, 200, 200]

    async def test_forwarded_for_identifies_client(self) -> None:
        async with AsyncClient(transport=ASGITransport(app=build_app(1)), base_url="http://test") as client:
            first = await client.get("/api/ping", headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.1"})
            second = await client.get("/api/ping", headers={"X-Forwarded-For": "8.8.8.8"})
            third = await client.get("/api/ping", headers={"X-Forwarded-For": "9.9.9.9"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert third.status_code == 429


class TestProxyHeadersMiddleware:
    async def test_forwarded_proto_sets_scheme(self) -> None:
        async with AsyncClient(transport=ASGITransport(app=build_app(10)), base_url="http://test") as client:
            response = await client.get("/api/ping", headers={"X-Forwarded-Proto": "https"})

        assert response.json() == {"scheme": "https"}
