# libs/commerce_shared/middleware.py
"""
ASGI middleware for the bridge HTTP surface.

Correlation ID propagation and per-route request metrics.
"""

import time
import uuid
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .context import current_correlation_id
from .logging import get_logger
from .metrics import Metrics

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Accept or mint a correlation id per request.

    The id is exposed as ``request.state.correlation_id``, bound to the
    logging context for the duration of the request and echoed back in the
    response header.
    """

    def __init__(self, app: ASGIApp, header_name: str = CORRELATION_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        token = current_correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            current_correlation_id.reset(token)

        response.headers[self.header_name] = correlation_id
        return response


def route_template(request: Request) -> str:
    """Matched route path (``/conversations/{conversation_id}``), else the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Count requests and time them per route template and status.

    Labelling by template keeps conversation ids out of the label set.
    """

    def __init__(self, app: ASGIApp, exclude_paths: Optional[List[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []
        self.logger = get_logger("metrics")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception:
            self.logger.exception(
                "Unhandled exception while serving request",
                extra={"method": request.method, "path": request.url.path},
            )
            raise
        finally:
            route = route_template(request)
            Metrics.counter(
                "bridge_http_requests",
                {"method": request.method, "route": route, "status": str(status_code)},
            )
            Metrics.histogram(
                "bridge_http_request_ms",
                (time.perf_counter() - started) * 1000,
                {"method": request.method, "route": route},
            )
