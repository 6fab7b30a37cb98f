"""Structured logging for the gateway.

JSON lines in production, a readable single-line format in development.
Either way each record carries the correlation id of the request that
emitted it, so one caller's trip through the resolver, the gateway and both
platform transports can be followed in the logs.

Security Impact:
    - Credential-bearing extra fields (tokens, secrets, authorization) are masked
    - Resolved identifiers are never attached by the gateway, only identity sources
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from clinical_gateway.infrastructure.request_context import CorrelationIdFilter

# Record attributes copied into JSON output when a middleware attached them
REQUEST_FIELDS = ("correlation_id", "client_ip", "method", "endpoint", "status_code", "duration_ms")

SENSITIVE_KEYS = frozenset({
    "authorization", "access_token", "token", "client_secret", "password", "shared_secret",
})
MASK = "***"

# Libraries that are chatty at INFO
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi", "httpx", "httpcore")

DEV_FORMAT = "%(asctime)s %(levelname)-7s [%(correlation_id)s] %(name)s: %(message)s"


def mask_sensitive(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: MASK if key.lower() in SENSITIVE_KEYS else value
        for key, value in fields.items()
    }


class StructuredFormatter(logging.Formatter):
    """Renders log records as single-line JSON.

    Parameters:
        service: Value of the ``service`` field on every line
    """

    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.service:
            entry["service"] = self.service

        for name in REQUEST_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != "-":
                entry[name] = value

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(mask_sensitive(extra_fields))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO", service: Optional[str] = None):
    """Configure the root logger for the gateway process.

    Parameters:
        use_json: Emit JSON lines (production) instead of the development format
        log_level: Level name; unknown names fall back to INFO
        service: Service name stamped on JSON lines
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    if use_json:
        handler.setFormatter(StructuredFormatter(service=service))
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
