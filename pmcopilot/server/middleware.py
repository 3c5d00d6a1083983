"""
Request tracking middleware.

Provides:
- Request ID generation and propagation
- User and session ID extraction
- Request timing logs
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req-{uuid.uuid4().hex[:16]}"


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an ID and the caller's user/session headers.

    ``X-Request-ID`` is taken from the request or generated, and echoed
    back on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        token = request_id_var.set(request_id)

        request.state.request_id = request_id
        request.state.user_id = request.headers.get("X-User-ID")
        request.state.session_id = request.headers.get("X-Session-ID")

        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        elapsed_ms = (time.time() - start_time) * 1000
        # Health probes are polled frequently.
        if not request.url.path.startswith("/health"):
            logger.info(
                "%s %s -> %d (%.1fms) request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                request_id,
            )
        response.headers["X-Request-ID"] = request_id
        return response
