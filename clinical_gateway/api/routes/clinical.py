"""Clinical read endpoints.

Every endpoint resolves the caller's platform identity, then reads one page
of normalized records through the Query Gateway.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from clinical_gateway.api.dependencies import (
    GatewayDep,
    PatientReaderDep,
    RequestContextDep,
    ResolverDep,
    SettingsDep,
)
from clinical_gateway.api.auth import Principal
from clinical_gateway.domain.identity import IdentityResolver, ResolutionPolicy
from clinical_gateway.domain.models import RequestContext
from clinical_gateway.infrastructure.settings import Settings
from clinical_gateway.models.clinical import ClinicalDataResponse
from clinical_gateway.models.errors import ErrorResponse
from clinical_gateway.services.query_gateway import QueryGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/platform", tags=["clinical"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing identity or invalid request"},
    401: {"model": ErrorResponse, "description": "Missing or invalid token"},
    403: {"model": ErrorResponse, "description": "Insufficient scope"},
    503: {"model": ErrorResponse, "description": "Platform throttled or unavailable"},
}

PageSizeQuery = Query(None, alias="pageSize", description="Records per page (1-100, default 25)")
PageTokenQuery = Query(None, alias="pageToken", description="Continuation token from a previous page")
SortQuery = Query(None, description="Sort hint, e.g. recordedDate:DESC")
PatientIdQuery = Query(None, alias="patientId", description="Patient identifier override")


async def read_clinical_page(
    object_type: str,
    principal: Principal,
    context: RequestContext,
    resolver: IdentityResolver,
    gateway: QueryGateway,
    app_settings: Settings,
    page_size: Optional[str] = None,
    page_token: Optional[str] = None,
    sort: Optional[str] = None,
    patient_id: Optional[str] = None,
    category: Optional[str] = None,
) -> ClinicalDataResponse:
    """Resolve the caller and fetch one page of an object type.

    Parameters:
        object_type: Object type key (e.g. "conditions")
        principal: Verified caller
        context: Per-request context
        resolver: Identity resolver
        gateway: Query Gateway
        app_settings: Application settings
        page_size: Raw pageSize query value
        page_token: Continuation token
        sort: Sort hint
        patient_id: Caller-supplied identity override
        category: Observation category

    Returns:
        ClinicalDataResponse: Normalized page

    Security Impact:
        - The patientId override is honoured only when the deployment allows it
    """
    policy = ResolutionPolicy(allow_query_override=app_settings.gateway.allow_query_override)
    patient = await resolver.resolve_required(
        context, principal.subject, principal.claims, patient_id, policy
    )

    result = await gateway.fetch(
        object_type,
        patient.resolved_id,
        page_size=page_size,
        page_token=page_token,
        sort=sort,
        category=category,
    )
    return ClinicalDataResponse(
        data=result.records,
        next_page_token=result.next_page_token,
        fetched_at=result.fetched_at,
        correlation_id=context.correlation_id,
    )


@router.get("/conditions", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_conditions(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    """Get the caller's conditions."""
    return await read_clinical_page(
        "conditions", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )


@router.get("/observations", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_observations(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
    category: Optional[str] = Query(None, description="Category, e.g. vital-signs or laboratory"),
) -> ClinicalDataResponse:
    """Get the caller's observations, optionally narrowed to one category.

    The ``vital-signs`` category is served from the vitals object type.
    """
    return await read_clinical_page(
        "observations", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id, category
    )


@router.get("/procedures", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_procedures(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    return await read_clinical_page(
        "procedures", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )


@router.get("/immunizations", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_immunizations(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    return await read_clinical_page(
        "immunizations", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )


@router.get("/allergies", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_allergies(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    return await read_clinical_page(
        "allergies", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )


@router.get("/clinical-notes", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_clinical_notes(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    return await read_clinical_page(
        "clinical-notes", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )


@router.get("/encounters", response_model=ClinicalDataResponse, responses=_ERROR_RESPONSES)
async def get_encounters(
    principal: PatientReaderDep,
    context: RequestContextDep,
    resolver: ResolverDep,
    gateway: GatewayDep,
    app_settings: SettingsDep,
    page_size: Optional[str] = PageSizeQuery,
    page_token: Optional[str] = PageTokenQuery,
    sort: Optional[str] = SortQuery,
    patient_id: Optional[str] = PatientIdQuery,
) -> ClinicalDataResponse:
    return await read_clinical_page(
        "encounters", principal, context, resolver, gateway, app_settings,
        page_size, page_token, sort, patient_id
    )
