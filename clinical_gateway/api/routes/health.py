"""Health check endpoints for the gateway API."""

import logging
import time
from typing import List

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from clinical_gateway.api.dependencies import CacheDep, SettingsDep, get_rest_client
from clinical_gateway.infrastructure.settings import Settings
from clinical_gateway.models.health import (
    HealthResponse,
    LivenessResponse,
    ReadinessCheck,
    ReadinessResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_started_at = time.monotonic()


def check_configuration(app_settings: Settings) -> List[ReadinessCheck]:
    """Check the configuration the gateway needs to serve clinical reads.

    Parameters:
        app_settings: Application settings

    Returns:
        One check per requirement

    Security Impact:
        - Reports only whether values are present, never the values
    """
    checks: List[ReadinessCheck] = []

    try:
        platform = app_settings.platform
    except ValidationError as e:
        logger.warning(f"Platform configuration invalid: {e.error_count()} error(s)")
        return [ReadinessCheck(name="platform", status="fail", message="Platform configuration is invalid")]

    checks.append(ReadinessCheck(
        name="platform_host",
        status="ok" if platform.host else "fail",
        message="Platform host configured" if platform.host else "PLATFORM_HOST is not set",
    ))
    checks.append(ReadinessCheck(
        name="ontology",
        status="ok" if platform.api_ontology_id else "fail",
        message="Ontology configured" if platform.api_ontology_id else "PLATFORM_ONTOLOGY_RID is not set",
    ))

    try:
        auth = app_settings.auth
        auth_ready = auth.is_configured
    except ValidationError:
        auth_ready = False
    checks.append(ReadinessCheck(
        name="auth",
        status="ok" if auth_ready else "fail",
        message="Token verification configured" if auth_ready else "AUTH0_DOMAIN or AUTH_JWT_SECRET is not set",
    ))
    return checks


@router.get("", response_model=HealthResponse)
async def health_check(app_settings: SettingsDep) -> HealthResponse:
    """Process health; always healthy while the process serves requests."""
    return HealthResponse(
        uptime_seconds=round(time.monotonic() - _started_at, 3),
        version=app_settings.version,
        environment=app_settings.environment,
    )


@router.get("/ready", response_model=ReadinessResponse, responses={503: {"model": ReadinessResponse}})
async def readiness_check(app_settings: SettingsDep):
    """Readiness check.

    Returns:
        ReadinessResponse with 200 when every check passes, 503 otherwise
    """
    checks = check_configuration(app_settings)
    ready = all(check.status == "ok" for check in checks)
    response = ReadinessResponse(status="ready" if ready else "not_ready", checks=checks)
    if not ready:
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return response


@router.get("/live", response_model=LivenessResponse)
async def liveness_check(cache: CacheDep) -> LivenessResponse:
    """Liveness check with cache and circuit breaker statistics."""
    breakers = []
    if get_rest_client.cache_info().currsize:
        client = get_rest_client()
        breakers.append(client.breaker.get_statistics())
        breakers.append(client.token_provider.breaker.get_statistics())
    return LivenessResponse(cache=cache.get_statistics(), circuit_breakers=breakers)
