"""Request correlation and access logging."""

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import metrics_collector

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/health", "/ready", "/metrics", "/favicon.ico")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Echo the caller's X-Request-ID, or mint one, and expose it as ``request.state.request_id``."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        response = await call_next(request)
        response.headers[self.header_name] = request.state.request_id
        return response


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    One log line and one metrics sample per request.

    The ``endpoint`` label is the matched route template (``/v1/bookings/{booking_id}``),
    not the concrete path.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = set(skip_paths or QUIET_PATHS)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        endpoint = getattr(request.scope.get("route"), "path", request.url.path)
        metrics_collector.record_request(request.method, endpoint, response.status_code, elapsed)

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            f"{request.method} {endpoint} -> {response.status_code}",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "method": request.method,
                "path": request.url.path,
                "endpoint": endpoint,
                "status_code": response.status_code,
                "duration_ms": round(elapsed * 1000, 2),
                "client_ip": _client_address(request),
            },
        )
        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    # Starlette runs the last-added middleware first; the request id must exist before logging
    if enable_logging:
        app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
