"""
API Middleware.

Request ID injection, API-key authentication, rate limiting, and
structured audit logging for every incoming API request.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from circles.config import get_settings
from circles.logging_config import generate_trace_id, get_logger, trace_id_var

logger = get_logger(__name__)

AUTH_SCHEMES = ("bearer", "apikey")
MIN_API_KEY_LENGTH = 10
PUBLIC_PATHS = frozenset({"/health", "/", "/docs", "/openapi.json"})


def _json_error(message: str, status_code: int, headers: Optional[dict[str, str]] = None) -> Response:
    return Response(
        content=f'{{"error": "{message}"}}',
        status_code=status_code,
        media_type="application/json",
        headers=headers,
    )


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a unique request ID into every request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", generate_trace_id())
        token = trace_id_var.set(request_id)

        start = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            trace_id_var.reset(token)

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)

        logger.info(
            "api_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
            request_id=request_id,
        )

        return response


class ApiKeyAuthMiddleware(BaseHTTPMiddleware):
    """
    Check ``Authorization: Bearer <key>`` (or ``ApiKey <key>``) against the
    configured keys. With no keys configured authentication is disabled,
    which is only allowed outside production.
    """

    def __init__(self, app: ASGIApp, api_keys: Optional[Iterable[str]] = None) -> None:
        super().__init__(app)
        settings = get_settings()
        keys = settings.api_keys if api_keys is None else api_keys
        self._keys = frozenset(k for k in keys if k)
        if not self._keys:
            if settings.is_production:
                raise RuntimeError("API_KEYS must be configured in production.")
            logger.warning("api_auth_disabled")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._keys or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        header = request.headers.get("Authorization", "")
        scheme, _, key = header.partition(" ")
        key = key.strip()

        if scheme.lower() not in AUTH_SCHEMES or len(key) < MIN_API_KEY_LENGTH:
            logger.warning("api_auth_missing", path=request.url.path)
            return _json_error("Missing or malformed Authorization header", 401)

        if key not in self._keys:
            logger.warning("api_auth_rejected", path=request.url.path)
            return _json_error("Invalid API key", 403)

        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter per client IP."""

    def __init__(
        self,
        app: ASGIApp,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ) -> None:
        super().__init__(app)
        settings = get_settings()
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        # In-memory only; each process keeps its own counts.
        self._hits: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()

        # Clean old entries
        self._hits[client_ip] = [
            t for t in self._hits[client_ip]
            if now - t < self.window_seconds
        ]

        if len(self._hits[client_ip]) >= self.max_requests:
            logger.warning("rate_limit_exceeded", client_ip=client_ip)
            return _json_error(
                "Rate limit exceeded",
                429,
                headers={"Retry-After": str(self.window_seconds)},
            )

        self._hits[client_ip].append(now)
        return await call_next(request)
