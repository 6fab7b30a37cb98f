"""Query Gateway service.

Orchestrates one clinical read:

    cache check -> build filter -> primary transport
        -> (on a generic failure only) secondary transport
        -> normalize -> cache populate -> return

Throttling and validation rejections from the primary transport are surfaced
immediately: the secondary transport reaches the same platform, so retrying
through it would not help. Nothing is cached on any error path.

Sort hints are accepted and become part of the cache key, but they are never
sent upstream because some object types reject sort fields outright.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from clinical_gateway.domain.catalog import ObjectTypeDefinition, get_object_type
from clinical_gateway.domain.filters import DEFAULT_NATIVE_PREFIXES, build_query_filter
from clinical_gateway.domain.guardrails import CircuitBreakerOpenError
from clinical_gateway.domain.models import (
    FilterExpression,
    NormalizedResultSet,
    OutcomeKind,
    TransportOutcome,
)
from clinical_gateway.domain.normalizer import normalize_response
from clinical_gateway.domain.ports import (
    CachePort,
    ConfigurationError,
    GatewayError,
    InvalidRequestError,
    MissingIdentityError,
    PlatformAPIError,
    PrimaryTransportPort,
    SecondaryTransportPort,
    TokenAcquisitionError,
    UpstreamThrottledError,
    UpstreamUnavailableError,
)
from clinical_gateway.domain.query import (
    build_query_shape,
    clamp_page_size,
    normalize_category,
    normalize_page_token,
    parse_sort,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 30.0

THROTTLED_MESSAGE = "Platform is rate limiting requests, please retry shortly"
INVALID_REQUEST_MESSAGE = "Platform rejected the query"
UNAVAILABLE_MESSAGE = "Platform service unavailable"
AUTH_CONFIGURATION_MESSAGE = "Platform authentication is misconfigured"


def classify_platform_error(error: PlatformAPIError) -> GatewayError:
    """Map a terminal platform failure onto the gateway's error taxonomy.

    Token endpoint failures are classified first: refused or missing client
    credentials are a ConfigurationError, anything else UpstreamUnavailableError.

    Returns:
        UpstreamThrottledError for 429, InvalidRequestError for 400,
        UpstreamUnavailableError otherwise
    """
    if isinstance(error, TokenAcquisitionError):
        if error.is_misconfiguration:
            return ConfigurationError(AUTH_CONFIGURATION_MESSAGE)
        return UpstreamUnavailableError(UNAVAILABLE_MESSAGE, details={"status": error.status_code})
    if error.is_throttled:
        return UpstreamThrottledError(THROTTLED_MESSAGE)
    if error.is_invalid_request:
        return InvalidRequestError(error.upstream_message or INVALID_REQUEST_MESSAGE)
    return UpstreamUnavailableError(UNAVAILABLE_MESSAGE, details={"status": error.status_code})


class QueryGateway:
    """Cached, normalized clinical reads with primary/secondary fallback.

    Example Usage:
        ```python
        gateway = QueryGateway(
            primary=object_set_client,
            secondary=rest_client,
            cache=InMemoryTTLCache(),
            object_type_names={"conditions": "Conditions"},
            ontology_id="ontology-1234",
        )
        result = await gateway.fetch("conditions", "auth0|abc123", page_size="10")
        ```
    """

    def __init__(
        self,
        primary: PrimaryTransportPort,
        secondary: SecondaryTransportPort,
        cache: CachePort,
        object_type_names: Mapping[str, str],
        ontology_id: Optional[str],
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        ttl_overrides: Optional[Mapping[str, float]] = None,
        category_object_types: Optional[Mapping[str, str]] = None,
        native_prefixes: Sequence[str] = DEFAULT_NATIVE_PREFIXES
    ):
        """Initialize the gateway.

        Parameters:
            primary: Typed object-set transport
            secondary: REST search transport
            cache: Keyed TTL cache
            object_type_names: Caller-facing type key -> platform object type API name
            ontology_id: Ontology API identifier (empty means misconfigured)
            ttl_seconds: Cache TTL for every object type
            ttl_overrides: Per object type TTL overrides
            category_object_types: Observation category -> dedicated platform object type
            native_prefixes: Prefixes marking platform-native identifiers
        """
        self.primary = primary
        self.secondary = secondary
        self.cache = cache
        self.object_type_names = dict(object_type_names)
        self.ontology_id = ontology_id
        self.ttl_seconds = ttl_seconds
        self.ttl_overrides = dict(ttl_overrides or {})
        self.category_object_types = dict(category_object_types or {})
        self.native_prefixes = tuple(native_prefixes)

    def ttl_for(self, object_type: str) -> float:
        return self.ttl_overrides.get(object_type, self.ttl_seconds)

    def _route(self, definition: ObjectTypeDefinition, category: Optional[str]) -> Tuple[str, Optional[str]]:
        """Pick the platform object type and the category left to filter on."""
        if category and category in self.category_object_types:
            return self.category_object_types[category], None

        platform_type = self.object_type_names.get(definition.key)
        if not platform_type:
            raise ConfigurationError(f"No platform object type configured for {definition.key}")
        return platform_type, category

    async def fetch(
        self,
        object_type: str,
        resolved_id: str,
        page_size: Any = None,
        page_token: Optional[str] = None,
        sort: Optional[str] = None,
        category: Optional[str] = None
    ) -> NormalizedResultSet:
        """Fetch one page of normalized records for a patient.

        Parameters:
            object_type: Caller-facing object type key (e.g. "conditions")
            resolved_id: Resolved platform record identifier
            page_size: Raw page size (clamped to [1, 100], default 25)
            page_token: Opaque continuation token
            sort: Caller sort hint (cache key only)
            category: Optional category discriminator

        Returns:
            NormalizedResultSet: The cached payload object on a hit, else a fresh one

        Raises:
            MissingIdentityError: If resolved_id is empty
            ConfigurationError: If the ontology or object type is not configured
            UpstreamThrottledError: If the platform rate-limited the request
            InvalidRequestError: If the platform rejected the query
            UpstreamUnavailableError: If the secondary transport failed too
        """
        definition = get_object_type(object_type)
        if not resolved_id:
            raise MissingIdentityError("Unable to resolve a patient identity for this request")

        size = clamp_page_size(page_size)
        token = normalize_page_token(page_token)
        category = normalize_category(category)
        shape = build_query_shape(resolved_id, size, token, parse_sort(sort, definition), category)
        cache_key = shape.serialize()

        cached = self.cache.get(definition.key, cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for {definition.key}")
            return cached

        if not self.ontology_id:
            raise ConfigurationError("Platform ontology identifier is not configured")

        platform_type, filter_category = self._route(definition, category)
        where = build_query_filter(definition, resolved_id, filter_category, self.native_prefixes)

        outcome = await self._execute_primary(platform_type, where, size, token)

        if outcome.kind == OutcomeKind.OK:
            response = outcome.payload
        elif outcome.kind == OutcomeKind.THROTTLED:
            logger.warning(f"Primary transport throttled for {platform_type}, not falling back")
            raise UpstreamThrottledError(THROTTLED_MESSAGE)
        elif outcome.kind == OutcomeKind.INVALID:
            logger.warning(f"Primary transport rejected query for {platform_type}: {outcome.message}")
            raise InvalidRequestError(outcome.message or INVALID_REQUEST_MESSAGE)
        else:
            logger.warning(
                f"Primary transport failed for {platform_type}, falling back to REST: {outcome.message}"
            )
            response = await self._execute_secondary(platform_type, where, size, token)

        records, next_page_token = normalize_response(definition, response)
        result = NormalizedResultSet(records=records, next_page_token=next_page_token)

        self.cache.set(definition.key, cache_key, result, self.ttl_for(definition.key))
        logger.info(f"Fetched {len(records)} {definition.key} records from {platform_type}")
        return result

    async def _execute_primary(
        self,
        platform_type: str,
        where: FilterExpression,
        page_size: int,
        page_token: Optional[str]
    ) -> TransportOutcome:
        """Call the primary transport and classify the outcome."""
        try:
            payload = await self.primary.fetch_page(platform_type, where, page_size, page_token)
        except TokenAcquisitionError as e:
            return TransportOutcome.transport_failure(e)
        except PlatformAPIError as e:
            if e.is_throttled:
                return TransportOutcome.throttled(THROTTLED_MESSAGE, e)
            if e.is_invalid_request:
                return TransportOutcome.invalid(e.upstream_message or INVALID_REQUEST_MESSAGE, e)
            return TransportOutcome.transport_failure(e)
        except Exception as e:
            return TransportOutcome.transport_failure(e)

        if not isinstance(payload, Mapping):
            return TransportOutcome.transport_failure(
                TypeError(f"Unexpected primary response type: {type(payload).__name__}")
            )
        return TransportOutcome.ok(dict(payload))

    async def _execute_secondary(
        self,
        platform_type: str,
        where: FilterExpression,
        page_size: int,
        page_token: Optional[str]
    ) -> Dict[str, Any]:
        """Call the secondary transport; its failure is final."""
        try:
            return await self.secondary.search_objects(platform_type, where, page_size, page_token)
        except CircuitBreakerOpenError:
            raise
        except PlatformAPIError as e:
            logger.error(f"Secondary transport failed for {platform_type}: {str(e)}")
            raise classify_platform_error(e) from e
        except Exception as e:
            logger.error(f"Secondary transport failed for {platform_type}: {type(e).__name__}: {str(e)}")
            raise UpstreamUnavailableError(UNAVAILABLE_MESSAGE) from e
