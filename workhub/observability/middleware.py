"""FastAPI middleware for request context."""

from __future__ import annotations

import logging
import time

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from workhub.observability.request_context import (
    ensure_request_id,
    reset_request_id,
    set_request_id,
)

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each request and response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        header_request_id = request.headers.get("X-Request-ID") or request.headers.get("X-Request-Id")
        request_id = ensure_request_id(header_request_id)
        token = set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.time()
        status_code = 500
        try:
            span = trace.get_current_span()
            if span:
                span.set_attribute("request.id", request_id)

            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration = (time.time() - start_time) * 1000
            logger.info(
                "[Request] %s %s %s %.1fms",
                request.method,
                request.url.path,
                status_code,
                duration,
            )
            reset_request_id(token)
