"""Request context middleware - request id, timing and the access log.

Every request gets an ``X-Request-ID`` (the caller's, or a fresh UUID)
that is bound into structlog's contextvars while the request is handled,
so every log line emitted on its behalf carries it.  The response gains
``X-Process-Time-Ms``; for streaming responses that is the time to the
first byte.

Tags:
    astraops, api, middleware, request-id, tracing, access-log

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from astraops.core.logging import bind_context, get_logger, unbind_context

log = get_logger("astraops.api.access")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID and timing header, and log the request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            log.info(
                "http.request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                elapsed_ms=elapsed_ms,
            )
        finally:
            unbind_context("request_id")
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
        return response
