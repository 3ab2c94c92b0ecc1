"""
Error types and their HTTP rendering.

Every application error derives from RelayError and carries its own
HTTP status and machine-readable code as class attributes:

    RelayError               500  INTERNAL_ERROR
    ├── NotFoundError        404  NOT_FOUND
    ├── ValidationError      400  VALIDATION_ERROR
    ├── ExternalServiceError 502  EXTERNAL_SERVICE_ERROR
    │   └── AlertSourceUnavailable   ALERT_SOURCE_UNAVAILABLE
    ├── PersistenceError     500  PERSISTENCE_ERROR
    └── ServiceNotReady      503  NOT_READY

Only the HTTP layer turns these into responses. The poll loop catches
them at component boundaries (see alerts.dispatcher) so a single failed
fetch, write or delivery never stops polling.

Error body:
    {"error": {"code", "message", "status", "details"?, "requestId"?,
               "path"?, "method"?}}
path/method are omitted in production.

Usage:
    from alert_relay.core.errors import NotFoundError, register_error_handlers

    raise NotFoundError("Location", query="Атлантида")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, ClassVar, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from alert_relay.core.config import settings
from alert_relay.core.logging_config import current_scope

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class RelayError(Exception):
    """Base exception for all application errors."""

    status_code: ClassVar[int] = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred", **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}

    def to_body(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


class NotFoundError(RelayError):
    """Unknown location, subscriber, ... (404)."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(f"{resource} not found", resource=resource, **identifiers)


class ValidationError(RelayError):
    """Bad input from a caller (400)."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        super().__init__(message, field=field, **details)


class ExternalServiceError(RelayError):
    """An upstream HTTP dependency failed (502)."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(f"{service}: {message or 'request failed'}", service=service, **details)


class AlertSourceUnavailable(ExternalServiceError):
    """The alert feed gave no data after every retry (502)."""

    error_code = "ALERT_SOURCE_UNAVAILABLE"

    def __init__(self, attempts: int):
        super().__init__("alerts.in.ua", "no data after retries", attempts=attempts)


class PersistenceError(RelayError):
    """A subscriber or history read/write failed (500)."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, message: str = "", **details: Any):
        super().__init__(f"{operation} failed: {message}", operation=operation, **details)


class ServiceNotReady(RelayError):
    """Request arrived before start-up finished or after shutdown (503)."""

    status_code = 503
    error_code = "NOT_READY"


# ═══════════════════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════════════════

def _respond(request: Request, status_code: int, body: Dict[str, Any]) -> JSONResponse:
    error = body["error"]
    request_id = current_scope().get("request_id")
    if request_id:
        error["requestId"] = request_id
    if not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Map RelayError, stray ValueErrors and anything else to JSON errors."""

    @app.exception_handler(RelayError)
    async def handle_relay_error(request: Request, exc: RelayError):
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "%s [%s]: %s", request.url.path, exc.error_code, exc.message,
            extra={"status_code": exc.status_code, "endpoint": request.url.path},
        )
        return _respond(request, exc.status_code, exc.to_body())

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("Rejected input on %s: %s", request.url.path, exc)
        return _respond(request, 400, ValidationError(str(exc)).to_body())

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled exception on %s", request.url.path, exc_info=exc)
        error = RelayError(str(exc) if settings.DEBUG else "Internal server error")
        body = error.to_body()
        if settings.DEBUG:
            body["error"]["details"] = {
                "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return _respond(request, 500, body)
