"""Patient profile models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from clinical_gateway.models.base import CamelModel


class PatientProfile(CamelModel):
    """A platform profile record.

    Attributes:
        rid: Platform primary key or resource id of the profile
        properties: Profile properties as stored on the platform
    """
    rid: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


class PatientProfileResponse(CamelModel):
    success: bool = True
    data: PatientProfile
    timestamp: datetime
    correlation_id: str


class ProfileSearchRequest(CamelModel):
    """Body of a profile search.

    Attributes:
        value: Identifier to search for (defaults to the caller's own identity)
        field_candidates: Profile fields to try, in order
        limit: Maximum profiles returned
    """
    value: Optional[str] = None
    field_candidates: List[str] = Field(default_factory=list)
    limit: int = Field(default=10, ge=1, le=100)


class ProfileSearchData(CamelModel):
    objects: List[PatientProfile] = Field(default_factory=list)


class ProfileSearchResponse(CamelModel):
    success: bool = True
    data: ProfileSearchData
    timestamp: datetime
    correlation_id: str
