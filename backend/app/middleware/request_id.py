"""
DocBridge Backend — Request ID Middleware
===========================================

What:  Tags every request with a short correlation id.
How:   Reuses the caller's X-Request-ID header when present, otherwise
       generates one; exposes it through a ContextVar (for loggers and
       exception handlers) and echoes it back in the response header.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Caller-supplied ids are truncated so they cannot bloat log lines
        rid = request.headers.get(REQUEST_ID_HEADER, "")[:64] or uuid.uuid4().hex[:12]
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
