import logging
import time
import uuid
from dataclasses import dataclass

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from userapi.core.logging import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "HTTP request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "remote_ip": client_ip(request),
                "user_agent": request.headers.get("user-agent", ""),
            },
        )
        return response


@dataclass
class _Bucket:
    tokens: float
    updated: float
    last_seen: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client token bucket held in process memory.

    Buckets untouched for ``expires_in`` seconds are dropped on the next sweep.
    Everything runs on the event loop, so no locking is needed.
    """

    def __init__(
        self,
        app: ASGIApp,
        rate: float,
        burst: int = 0,
        expires_in: float = 180.0,
    ):
        super().__init__(app)
        self.rate = rate
        self.burst = burst or max(int(rate), 1)
        self.expires_in = expires_in
        self._buckets: dict[str, _Bucket] = {}
        self._last_sweep = time.monotonic()

    def allow(self, identifier: str) -> bool:
        now = time.monotonic()
        self._sweep(now)

        bucket = self._buckets.get(identifier)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.burst), updated=now, last_seen=now)
            self._buckets[identifier] = bucket
        else:
            elapsed = now - bucket.updated
            bucket.tokens = min(float(self.burst), bucket.tokens + elapsed * self.rate)
            bucket.updated = now
            bucket.last_seen = now

        if bucket.tokens < 1:
            return False
        bucket.tokens -= 1
        return True

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.expires_in:
            return
        self._last_sweep = now
        stale = [k for k, b in self._buckets.items() if now - b.last_seen > self.expires_in]
        for key in stale:
            del self._buckets[key]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        identifier = client_ip(request)
        if not self.allow(identifier):
            logger.warning("Rate limit exceeded", extra={"remote_ip": identifier})
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Too many requests",
                    "code": 429,
                },
            )
        return await call_next(request)


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Render unexpected exceptions as the standard 500 error body.

    Sits inside the request id and logging middleware so the failure is
    logged with its request id and the response still carries the header.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error",
                extra={"method": request.method, "path": request.url.path},
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_server_error",
                    "message": "Internal server error",
                    "code": 500,
                },
            )
