"""Request Context Management.

This module provides a context variable carrying the current request's
RequestContext, so code far from the HTTP layer (log filters in particular)
can read the correlation id without it being threaded through every call.

Security Impact:
    - Context is isolated per asyncio task (contextvars)
    - Context is optional: code outside a request sees None

Architecture:
    - Set by the correlation middleware, reset when the request completes
    - The same object is stored on ``request.state.context`` for route handlers
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from clinical_gateway.domain.models import RequestContext

_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    'request_context',
    default=None
)


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_request_context() -> Optional[RequestContext]:
    """Get the current request context.

    Returns:
        Optional[RequestContext]: None if no request is in flight (e.g., in the CLI)
    """
    return _request_context.get()


def get_correlation_id() -> Optional[str]:
    context = _request_context.get()
    return context.correlation_id if context else None


@contextmanager
def request_context(correlation_id: Optional[str] = None) -> Iterator[RequestContext]:
    """Context manager binding a fresh RequestContext for the duration of a request.

    Parameters:
        correlation_id: Incoming correlation id (a new one is generated when empty)

    Yields:
        RequestContext: The bound context

    Example:
        ```python
        with request_context(request.headers.get("X-Correlation-Id")) as ctx:
            response = await call_next(request)
        ```
    """
    context = RequestContext(correlation_id=(correlation_id or "").strip() or new_correlation_id())
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Logging filter stamping records with the current correlation id."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "-"
        return True
