"""Dependency injection for the gateway API.

This module provides dependency injection functions for FastAPI. Platform
adapters and the gateway are built once from settings and cached; tests swap
them out through ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Annotated, Optional, Union

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import SecretStr

from clinical_gateway.adapters.cache import InMemoryTTLCache
from clinical_gateway.adapters.platform.auth import ClientCredentialsTokenProvider, StaticTokenProvider
from clinical_gateway.adapters.platform.object_client import ObjectSetClient
from clinical_gateway.adapters.platform.profiles import PlatformProfileDirectory
from clinical_gateway.adapters.platform.rest_client import PlatformRestClient
from clinical_gateway.api.auth import USERNAME_HEADER, AuthenticationError, Principal, TokenVerifier, propagate_username
from clinical_gateway.domain.identity import IdentityResolver
from clinical_gateway.domain.models import RequestContext
from clinical_gateway.domain.ports import CachePort
from clinical_gateway.infrastructure.request_context import get_request_context as current_request_context
from clinical_gateway.infrastructure.request_context import new_correlation_id
from clinical_gateway.infrastructure.settings import Settings, settings
from clinical_gateway.services.query_gateway import QueryGateway

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False, description="Identity provider access token")


def get_settings() -> Settings:
    return settings


def get_request_context(request: Request) -> RequestContext:
    """Return the RequestContext bound by the correlation middleware."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = current_request_context() or RequestContext(correlation_id=new_correlation_id())
        request.state.context = context
    return context


@lru_cache()
def get_token_verifier() -> TokenVerifier:
    """Get the token verifier (cached).

    Returns:
        TokenVerifier: Verifier configured from auth settings
    """
    return TokenVerifier(settings.auth)


@lru_cache()
def get_cache() -> CachePort:
    return InMemoryTTLCache()


def _client_credentials_provider() -> ClientCredentialsTokenProvider:
    platform = settings.platform
    return ClientCredentialsTokenProvider(
        token_url=platform.token_url or "",
        client_id=platform.client_id or "",
        client_secret=platform.client_secret or SecretStr(""),
        scopes=platform.scopes,
        timeout=platform.timeout_seconds,
    )


@lru_cache()
def get_rest_client() -> PlatformRestClient:
    """Get the REST search client with its own token provider (cached).

    Security Impact:
        - Credentials come from SecretStr settings and are never logged
    """
    platform = settings.platform
    logger.debug(f"Creating platform REST client for host: {platform.host or '<unset>'}")
    return PlatformRestClient(
        host=platform.host,
        ontology_id=platform.api_ontology_id,
        token_provider=_client_credentials_provider(),
        timeout=platform.timeout_seconds,
    )


@lru_cache()
def get_object_client() -> ObjectSetClient:
    """Get the typed object-set client (cached).

    Uses the pre-issued platform token when one is configured, otherwise a
    client-credentials provider separate from the REST client's.
    """
    platform = settings.platform
    token_provider: Union[StaticTokenProvider, ClientCredentialsTokenProvider]
    if platform.static_token and platform.static_token.get_secret_value():
        token_provider = StaticTokenProvider(platform.static_token)
    else:
        token_provider = _client_credentials_provider()
    return ObjectSetClient(
        host=platform.host,
        ontology_id=platform.api_ontology_id,
        token_provider=token_provider,
        timeout=platform.timeout_seconds,
    )


@lru_cache()
def get_profile_directory() -> PlatformProfileDirectory:
    return PlatformProfileDirectory(get_rest_client(), object_type=settings.object_types.profile)


@lru_cache()
def get_identity_resolver() -> IdentityResolver:
    profile_directory: Optional[PlatformProfileDirectory] = None
    if settings.platform.host and settings.platform.api_ontology_id:
        profile_directory = get_profile_directory()
    return IdentityResolver(
        profile_lookup=profile_directory,
        native_prefixes=settings.gateway.native_id_prefixes,
    )


@lru_cache()
def get_query_gateway() -> QueryGateway:
    """Get the Query Gateway (cached).

    Returns:
        QueryGateway: Gateway wired to both platform transports and the shared cache
    """
    object_types = settings.object_types
    return QueryGateway(
        primary=get_object_client(),
        secondary=get_rest_client(),
        cache=get_cache(),
        object_type_names=object_types.as_mapping(),
        ontology_id=settings.platform.api_ontology_id,
        ttl_seconds=settings.gateway.cache_ttl_seconds,
        category_object_types={"vital-signs": object_types.vitals},
        native_prefixes=settings.gateway.native_id_prefixes,
    )


async def close_platform_clients() -> None:
    """Close HTTP pools of any platform clients that were created."""
    if get_object_client.cache_info().currsize:
        client = get_object_client()
        await client.close()
        if isinstance(client.token_provider, ClientCredentialsTokenProvider):
            await client.token_provider.close()
    if get_rest_client.cache_info().currsize:
        client = get_rest_client()
        await client.close()
        await client.token_provider.close()


async def get_principal(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    context: Annotated[RequestContext, Depends(get_request_context)],
) -> Principal:
    """Verify the bearer token and propagate the caller's username.

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing or malformed Authorization header", code="UNAUTHORIZED")

    principal = verifier.verify(credentials.credentials)
    propagate_username(context, request.headers.get(USERNAME_HEADER), principal.claims)
    return principal


def require_scopes(*scopes: str):
    """Build a dependency requiring every listed scope.

    Parameters:
        scopes: Required scopes

    Returns:
        Dependency callable returning the verified Principal
    """
    async def dependency(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
        missing = principal.missing_scopes(scopes)
        if missing:
            logger.warning(f"Caller lacks required scopes: {', '.join(missing)}")
            raise AuthenticationError(
                f"Insufficient scope: requires {' '.join(scopes)}",
                code="INSUFFICIENT_SCOPE",
                status_code=403,
            )
        return principal

    return dependency


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]
PatientReaderDep = Annotated[Principal, Depends(require_scopes("read:patient"))]
ResolverDep = Annotated[IdentityResolver, Depends(get_identity_resolver)]
GatewayDep = Annotated[QueryGateway, Depends(get_query_gateway)]
ProfileDirectoryDep = Annotated[PlatformProfileDirectory, Depends(get_profile_directory)]
CacheDep = Annotated[CachePort, Depends(get_cache)]
