"""Middleware configuration for the gateway API.

This module sets up middleware for correlation ids, logging, error handling
and security.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from clinical_gateway.api.errors import INTERNAL_ERROR_MESSAGE, error_response, request_correlation_id
from clinical_gateway.api.security import (
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    get_rate_limit_config,
)
from clinical_gateway.infrastructure.request_context import request_context
from clinical_gateway.infrastructure.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a RequestContext for each request and echoes its correlation id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with request_context(request.headers.get(CORRELATION_HEADER)) as context:
            request.state.context = context
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = context.correlation_id
            return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response details.

        Parameters:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            Response: HTTP response with X-Process-Time header
        """
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        extra = {"client_ip": client_ip, "method": request.method, "endpoint": request.url.path}

        logger.debug(f"{request.method} {request.url.path} from {client_ip}", extra=extra)

        response = await call_next(request)
        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}"

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {process_time:.3f}s",
            extra={**extra, "status_code": response.status_code, "duration_ms": round(process_time * 1000, 1)}
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler: anything the exception handlers did not render becomes a 500."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unexpected error on {request.url.path}: {str(e)}", exc_info=True)
            return error_response(500, "INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE, request_correlation_id(request))


def setup_middleware(app, app_settings: Settings = None) -> None:
    """Setup application middleware.

    Parameters:
        app: FastAPI application instance
        app_settings: Settings to read limits from (defaults to global settings)

    Middleware Order (outermost first):
        1. CorrelationIdMiddleware - Binds request context, echoes correlation id
        2. LoggingMiddleware - Logs requests/responses with the correlation id
        3. SecurityHeadersMiddleware - Adds security headers
        4. RateLimitMiddleware - Enforces rate limits
        5. ErrorHandlingMiddleware - Renders unexpected errors
    """
    app_settings = app_settings or default_settings
    gateway_config = app_settings.gateway

    app.add_middleware(ErrorHandlingMiddleware)

    app.add_middleware(
        RateLimitMiddleware,
        default_limit=gateway_config.rate_limit_default,
        default_window=gateway_config.rate_limit_window,
        per_endpoint_limits=get_rate_limit_config(
            gateway_config.rate_limit_platform, gateway_config.rate_limit_window
        ),
    )

    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=app_settings.enable_hsts)

    app.add_middleware(LoggingMiddleware)

    # Added last so it wraps everything else
    app.add_middleware(CorrelationIdMiddleware)
