"""
HTTP middleware: access logging and a fixed-window rate limiter.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per client IP: at most ``max_requests`` per ``window_seconds``."""

    def __init__(
        self,
        app,
        *,
        max_requests: int = 100,
        window_seconds: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                self._sweep(now)
            if window is None or now >= window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def _sweep(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now >= w.reset_at]
        for key in expired:
            del self._windows[key]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ip = request.client.host if request.client else "unknown"
        if not self._allow(ip):
            logger.warning("Rate limit exceeded for IP: %s", ip)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Too many requests, please try again later.",
                },
            )
        return await call_next(request)
