"""
Per-request access log for the webhook and admin endpoints.
"""

import time
import uuid
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

# Polled by the hosting platform every few seconds
PROBE_PATHS = frozenset({"/", "/healthz"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id, time the request and log its outcome."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=path)

        started = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            fields = dict(
                method=request.method,
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            if status_code >= 500:
                logger.error("http_request", **fields)
            elif status_code >= 400:
                logger.warning("http_request", **fields)
            elif path in PROBE_PATHS:
                logger.debug("http_request", **fields)
            else:
                logger.info("http_request", **fields)
