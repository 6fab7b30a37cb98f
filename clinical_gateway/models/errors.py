"""Error envelope models (documentation only; handlers build the body directly)."""

from typing import Optional

from clinical_gateway.models.base import CamelModel


class ErrorDetail(CamelModel):
    code: str
    message: str
    correlation_id: Optional[str] = None
    timestamp: str


class ErrorResponse(CamelModel):
    error: ErrorDetail
