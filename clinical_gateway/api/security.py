"""Security middleware for the gateway API.

This module provides rate limiting and security headers.

Security Impact:
    - Rate limiting shields the gateway and the platform behind it from abuse
    - Security headers protect API consumers against common vulnerabilities
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from clinical_gateway.api.errors import error_response, request_correlation_id

logger = logging.getLogger(__name__)

# Paths never rate limited
EXEMPT_PATHS = ("/", "/health", "/health/ready", "/health/live", "/docs", "/redoc", "/openapi.json")

PLATFORM_PATH_PREFIX = "/api/v1/platform"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware for rate limiting requests.

    Implements an in-memory sliding-window limiter keyed by client address.
    Limits are per process; a multi-instance deployment needs a shared store.
    """

    def __init__(
        self,
        app,
        default_limit: int = 1000,
        default_window: int = 60,
        per_endpoint_limits: Dict[str, Tuple[int, int]] = None,
        exempt_paths: Iterable[str] = EXEMPT_PATHS,
        clock: Callable[[], float] = time.time
    ):
        """Initialize rate limiter.

        Parameters:
            app: ASGI application
            default_limit: Default requests per window
            default_window: Default window in seconds
            per_endpoint_limits: Path prefix -> (limit, window)
            exempt_paths: Paths that are never limited
            clock: Clock in seconds
        """
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.per_endpoint_limits = per_endpoint_limits or {}
        self.exempt_paths = frozenset(exempt_paths)
        self._clock = clock

        # {client_id: {endpoint_key: [timestamp, ...]}}
        self._requests: Dict[str, Dict[str, list]] = defaultdict(lambda: defaultdict(list))

        self._last_cleanup = clock()
        self._cleanup_interval = 300

    def _get_client_id(self, request: Request) -> str:
        """Client identifier: first forwarded address, else the peer address."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def _get_endpoint_key(self, request: Request) -> str:
        path = request.url.path
        for endpoint_pattern in self.per_endpoint_limits:
            if path.startswith(endpoint_pattern):
                return endpoint_pattern
        return "default"

    def _limits_for(self, endpoint_key: str) -> Tuple[int, int]:
        return self.per_endpoint_limits.get(endpoint_key, (self.default_limit, self.default_window))

    def _cleanup_old_entries(self):
        """Drop tracking for clients idle longer than the longest window."""
        current_time = self._clock()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        longest_window = max([self.default_window] + [w for _, w in self.per_endpoint_limits.values()])
        cutoff_time = current_time - longest_window

        for client_id in list(self._requests):
            client_requests = self._requests[client_id]
            for endpoint_key in list(client_requests):
                client_requests[endpoint_key] = [ts for ts in client_requests[endpoint_key] if ts > cutoff_time]
                if not client_requests[endpoint_key]:
                    del client_requests[endpoint_key]
            if not client_requests:
                del self._requests[client_id]

        self._last_cleanup = current_time

    def _check_rate_limit(self, client_id: str, endpoint_key: str) -> Tuple[bool, int, int]:
        """Check if request is within rate limit.

        Returns:
            Tuple of (allowed, remaining, reset_after)
        """
        limit, window = self._limits_for(endpoint_key)
        current_time = self._clock()
        window_start = current_time - window

        client_requests = self._requests[client_id][endpoint_key]
        client_requests[:] = [ts for ts in client_requests if ts > window_start]

        if len(client_requests) >= limit:
            reset_after = max(int(window - (current_time - client_requests[0])), 1)
            return False, 0, reset_after

        client_requests.append(current_time)
        return True, limit - len(client_requests), window

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        self._cleanup_old_entries()

        client_id = self._get_client_id(request)
        endpoint_key = self._get_endpoint_key(request)
        limit, _ = self._limits_for(endpoint_key)
        allowed, remaining, reset_after = self._check_rate_limit(client_id, endpoint_key)
        reset_at = str(int(self._clock()) + reset_after)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {endpoint_key}")
            return error_response(
                429,
                "RATE_LIMITED",
                "Rate limit exceeded. Please try again later.",
                request_correlation_id(request),
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset_at,
                    "Retry-After": str(reset_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = reset_at
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware adding security headers to every response."""

    def __init__(self, app, enable_hsts: bool = False):
        """Initialize security headers middleware.

        Parameters:
            app: ASGI application
            enable_hsts: Enable HSTS header (use in production with HTTPS)
        """
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "no-referrer",
            "Cache-Control": "no-store",
        }
        # Interactive docs load scripts from a CDN
        if request.url.path not in ("/docs", "/redoc"):
            security_headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if self.enable_hsts:
            security_headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        for header, value in security_headers.items():
            response.headers.setdefault(header, value)

        return response


def get_rate_limit_config(platform_limit: int, window: int) -> Dict[str, Tuple[int, int]]:
    """Get rate limit configuration per endpoint prefix.

    Returns:
        Dictionary mapping endpoint prefixes to (limit, window) tuples
    """
    return {
        PLATFORM_PATH_PREFIX: (platform_limit, window),
    }
