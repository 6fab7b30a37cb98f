"""Patient profile endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from clinical_gateway.adapters.platform.profiles import profile_rid
from clinical_gateway.api.dependencies import (
    PatientReaderDep,
    ProfileDirectoryDep,
    RequestContextDep,
    ResolverDep,
    SettingsDep,
)
from clinical_gateway.domain.identity import OVERRIDE_FIRST_POLICY, ResolutionPolicy
from clinical_gateway.domain.ports import (
    GatewayError,
    InvalidRequestError,
    PlatformAPIError,
    ProfileNotFoundError,
    UpstreamUnavailableError,
)
from clinical_gateway.models.errors import ErrorResponse
from clinical_gateway.models.patient import (
    PatientProfile,
    PatientProfileResponse,
    ProfileSearchData,
    ProfileSearchRequest,
    ProfileSearchResponse,
)
from clinical_gateway.services.query_gateway import UNAVAILABLE_MESSAGE, classify_platform_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["patient"])


def profile_lookup_error(error: PlatformAPIError) -> GatewayError:
    """Classify a failed lookup of the caller's own profile.

    The caller supplies no filter on this route, so a platform rejection is
    reported as an upstream fault rather than INVALID_REQUEST.
    """
    classified = classify_platform_error(error)
    if isinstance(classified, InvalidRequestError):
        return UpstreamUnavailableError(UNAVAILABLE_MESSAGE, details={"status": error.status_code})
    return classified


@router.get(
    "/api/v1/platform/patient/profile",
    response_model=PatientProfileResponse,
    responses={404: {"model": ErrorResponse, "description": "No profile for the caller"}},
)
async def get_patient_profile(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    directory: ProfileDirectoryDep,
    app_settings: SettingsDep,
) -> PatientProfileResponse:
    """Get the caller's platform profile.

    Raises:
        MissingIdentityError: If no identity could be resolved
        ProfileNotFoundError: If no profile matches the resolved identity
    """
    policy = ResolutionPolicy(allow_query_override=app_settings.gateway.allow_query_override)
    patient = await resolver.resolve_required(context, principal.subject, principal.claims, None, policy)

    profile = None
    for identifier in dict.fromkeys([patient.matched_identifier, patient.resolved_id]):
        if identifier:
            try:
                profile = await directory.lookup(identifier)
            except PlatformAPIError as e:
                logger.error(f"Profile lookup failed: {str(e)}")
                raise profile_lookup_error(e) from e
            if profile is not None:
                break

    if profile is None:
        raise ProfileNotFoundError("No patient profile found for the caller")

    return PatientProfileResponse(
        data=PatientProfile(rid=profile_rid(profile), properties=profile),
        timestamp=datetime.now(timezone.utc),
        correlation_id=context.correlation_id,
    )


@router.post("/api/v1/patient/profile/search", response_model=ProfileSearchResponse)
async def search_patient_profiles(
    body: ProfileSearchRequest,
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    directory: ProfileDirectoryDep,
) -> ProfileSearchResponse:
    """Search profiles for an identifier.

    The body ``value`` takes priority over the caller's own identity; without
    it the caller's resolved identity is searched.
    """
    patient = await resolver.resolve_required(
        context, principal.subject, principal.claims, body.value, OVERRIDE_FIRST_POLICY
    )

    try:
        profiles = await directory.search(
            patient.resolved_id,
            fields=body.field_candidates or None,
            limit=body.limit,
        )
    except PlatformAPIError as e:
        logger.error(f"Profile search failed: {str(e)}")
        raise classify_platform_error(e) from e
    objects = [PatientProfile(rid=profile_rid(p), properties=p) for p in profiles[:body.limit]]

    return ProfileSearchResponse(
        data=ProfileSearchData(objects=objects),
        timestamp=datetime.now(timezone.utc),
        correlation_id=context.correlation_id,
    )
