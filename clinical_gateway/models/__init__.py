"""Gateway API Pydantic models."""

from clinical_gateway.models.clinical import ClinicalDataResponse
from clinical_gateway.models.errors import ErrorDetail, ErrorResponse
from clinical_gateway.models.health import (
    HealthResponse,
    LivenessResponse,
    ReadinessCheck,
    ReadinessResponse,
)
from clinical_gateway.models.patient import (
    PatientProfile,
    PatientProfileResponse,
    ProfileSearchData,
    ProfileSearchRequest,
    ProfileSearchResponse,
)
