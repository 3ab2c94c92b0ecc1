"""
Request middleware: correlation id, timing, one log line per request.

Response headers:
    X-Request-ID     echoed from the request or generated
    X-Process-Time   handler time in ms

Every log record emitted while the request is handled carries the
request scope (see core.logging_config.log_scope). Docs, OpenAPI and
liveness probes are not logged.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from alert_relay.core.logging_config import log_scope

logger = logging.getLogger(__name__)

_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        quiet = path.startswith(_QUIET_PREFIXES)

        with log_scope(request_id=request_id, client_ip=client_ip,
                       endpoint=path, method=request.method):
            started = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception:
                elapsed = (time.perf_counter() - started) * 1000
                logger.error("%s %s → 500 after %.1fms", request.method, path, elapsed,
                             extra={"duration_ms": elapsed, "status_code": 500})
                raise

            elapsed = (time.perf_counter() - started) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{elapsed:.1f}ms"

            if not quiet:
                status = response.status_code
                logger.log(
                    logging.WARNING if status >= 400 else logging.INFO,
                    "%s %s → %d (%.1fms)", request.method, path, status, elapsed,
                    extra={"duration_ms": elapsed, "status_code": status, "endpoint": path},
                )

        return response
