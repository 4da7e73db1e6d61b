"""
DocBridge Backend — Access Log Middleware
===========================================

What:  One log line per request: method, path, status, duration, request id.
Why:   Uvicorn's access log has no request id and no timing.

Privacy:
    Download paths contain file ids, which are capabilities. Only the first
    characters of an id under /files/ are logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("docbridge.access")

QUIET_PATHS = {"/health"}


def _redact(path: str) -> str:
    parts = path.split("/")
    if len(parts) >= 3 and parts[1] == "files" and parts[2]:
        parts[2] = parts[2][:6] + "..."
        return "/".join(parts[:3])
    return path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        status = response.status_code
        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        client_ip = request.client.host if request.client else "unknown"
        path = _redact(request.url.path)
        logger.log(
            level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            request_id_var.get(""),
            client_ip,
            extra={"status": status, "duration_ms": round(duration_ms, 2), "path": path},
        )
        return response
