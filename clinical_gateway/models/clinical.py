"""Clinical read response models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from clinical_gateway.models.base import CamelModel


class ClinicalDataResponse(CamelModel):
    """Response for every clinical read endpoint.

    Attributes:
        success: Always True for a successful read
        data: Normalized records for the requested page
        next_page_token: Token for the next page, or None on the last page
        fetched_at: When the page was fetched from the platform (cached pages keep their original time)
        correlation_id: Correlation id of this request
    """
    success: bool = True
    data: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    fetched_at: datetime
    correlation_id: str
