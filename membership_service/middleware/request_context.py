"""Request context middleware: request ids, timing, one summary line.

Concurrent requests interleave their log lines on the same thread.  A
per-request id, kept in a ContextVar (per-task, unlike thread-locals) and
copied onto every record by the logging filter, makes each request's
lines traceable: the id a client sends in ``X-Request-ID`` is echoed
back, otherwise a fresh UUID is generated.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from membership_service.core.logging import request_id_var, user_id_var

logger = logging.getLogger(__name__)

# Client-supplied ids longer than this are replaced, not truncated.
MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, time the request, log completion.

    For every incoming request:
    1. Reads X-Request-ID (if the client sent a usable one) or generates a UUID
    2. Stores it in a ContextVar for the logging filter
    3. Logs a summary line on completion (method, path, status, duration)
    4. Sets X-Request-ID on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id", "").strip()
        if not req_id or len(req_id) > MAX_REQUEST_ID_LENGTH:
            req_id = str(uuid.uuid4())
        request_token = request_id_var.set(req_id)
        user_token = user_id_var.set(None)

        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)

            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            user_id_var.reset(user_token)
            request_id_var.reset(request_token)
