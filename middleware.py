# middleware.py
import logging
import threading
import time
from typing import Callable, Dict, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("access")

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


class FixedWindowRateLimiter:
    """Counts hits per client in fixed windows of ``window_s`` seconds.

    Clients whose window has run out are pruned at most once per window, so
    the table only holds clients seen during the last window.
    """

    def __init__(self, max_requests: int, window_s: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        # client -> (window start, hits)
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._last_prune = clock()
        self._lock = threading.Lock()

    def allow(self, client: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_prune >= self.window_s:
                self._prune(now)
            start, count = self._hits.get(client, (now, 0))
            if now - start >= self.window_s:
                start, count = now, 0
            count += 1
            self._hits[client] = (start, count)
            return count <= self.max_requests

    def _prune(self, now: float) -> None:
        stale = [c for c, (start, _) in self._hits.items() if now - start >= self.window_s]
        for client in stale:
            del self._hits[client]
        self._last_prune = now

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowRateLimiter, prefixes: Sequence[str]):
        super().__init__(app)
        self.limiter = limiter
        self.prefixes = tuple(prefixes)

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(self.prefixes):
            client = request.client.host if request.client else "unknown"
            if not self.limiter.allow(client):
                logger.warning("Rate limit exceeded", extra={"client": client, "path": request.url.path})
                return JSONResponse({"error": RATE_LIMIT_MESSAGE}, status_code=429)
        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One log line per request. Also turns unexpected errors into a 500 body.

    Must sit inside ``SecurityHeadersMiddleware`` so 500s still get headers.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        t0 = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error", extra={"path": request.url.path})
            response = JSONResponse({"error": "Internal Server Error"}, status_code=500)
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.3f} ms",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(elapsed_ms, 3),
            },
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
