"""
HTTP middleware - Reverse proxy headers and per-client rate limiting.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from structlog import get_logger

logger = get_logger(__name__)


def get_client_ip(request: Request) -> str:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to handle X-Forwarded-* headers from reverse proxy."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Fix scheme based on X-Forwarded-Proto header
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto

        return await call_next(request)


class FixedWindowRateLimiter:
    """In-process fixed-window request counter keyed by client."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def acquire(self, client: str) -> tuple[bool, float]:
        """
        Count one request for `client`.

        Returns:
            (allowed, seconds until the window resets)
        """
        now = self.clock()
        started, count = self._windows.get(client, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        retry_after = max(self.window_seconds - (now - started), 0.0)
        if count >= self.max_requests:
            return False, retry_after

        self._windows[client] = (started, count + 1)
        self._evict_expired(now)
        return True, retry_after

    def _evict_expired(self, now: float) -> None:
        if len(self._windows) < 10_000:
            return
        expired = [k for k, (s, _) in self._windows.items() if now - s >= self.window_seconds]
        for k in expired:
            del self._windows[k]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces per-IP rate limits on /api/ paths."""

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        enabled: bool = True,
        path_prefix: str = "/api/",
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self.path_prefix = path_prefix
        self.limiter = FixedWindowRateLimiter(max_requests, window_seconds)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self.enabled or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client_ip = get_client_ip(request)
        allowed, retry_after = self.limiter.acquire(client_ip)

        if not allowed:
            logger.warning("rate_limit_exceeded", client_ip=client_ip, path=request.url.path)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests from this IP, please try again later."},
                headers={"Retry-After": str(int(retry_after) + 1)},
            )

        return await call_next(request)
