"""Error envelope and exception handlers.

Every error leaves the gateway as::

    {"error": {"code", "message", "correlationId", "timestamp"}}

with the HTTP status chosen by the error's class.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinical_gateway.domain.guardrails import CircuitBreakerOpenError
from clinical_gateway.domain.ports import GatewayError
from clinical_gateway.infrastructure.request_context import get_correlation_id

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"

_HTTP_STATUS_CODES = {
    400: "INVALID_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMITED",
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def request_correlation_id(request: Optional[Request] = None) -> Optional[str]:
    """Correlation id of the request, from its context or the current task."""
    if request is not None:
        context = getattr(request.state, "context", None)
        if context is not None:
            return context.correlation_id
    return get_correlation_id()


def error_body(code: str, message: str, correlation_id: Optional[str]) -> Dict[str, dict]:
    return {
        "error": {
            "code": code,
            "message": message,
            "correlationId": correlation_id,
            "timestamp": utc_timestamp(),
        }
    }


def error_response(
    status_code: int,
    code: str,
    message: str,
    correlation_id: Optional[str],
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(code, message, correlation_id),
        headers=headers,
    )


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render a GatewayError with its own code and status."""
    correlation_id = request_correlation_id(request)
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")

    headers = None
    if isinstance(exc, CircuitBreakerOpenError):
        headers = {"Retry-After": str(max(int(exc.retry_after), 1))}

    return error_response(exc.status_code, exc.code, exc.message, correlation_id, headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request parameter validation failures as 400 VALIDATION_ERROR."""
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    message = f"Invalid request parameters: {', '.join(fields)}" if fields else "Invalid request parameters"
    return error_response(400, "VALIDATION_ERROR", message, request_correlation_id(request))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (404, 405, ...) in the error envelope."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else code
    return error_response(
        exc.status_code, code, message, request_correlation_id(request),
        headers=getattr(exc, "headers", None)
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the error envelope handlers on the application."""
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
