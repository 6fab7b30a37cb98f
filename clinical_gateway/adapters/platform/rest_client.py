"""Raw REST search client (secondary transport).

Searches objects with ``POST {host}/api/v2/ontologies/{ontologyId}/objects/{objectType}/search``
using its own client-credentials token. Calls are guarded by a circuit breaker:
while the platform is failing, requests fail fast with
"Platform service temporarily unavailable" instead of piling up.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from clinical_gateway.adapters.platform.auth import ClientCredentialsTokenProvider
from clinical_gateway.adapters.platform.http import PlatformHttpClient
from clinical_gateway.domain.guardrails import CircuitBreaker, CircuitBreakerConfig
from clinical_gateway.domain.ports import PlatformAPIError, Result, SecondaryTransportPort

logger = logging.getLogger(__name__)

# Client errors say nothing about platform health and do not trip the breaker
_BREAKER_NEUTRAL_STATUSES = frozenset({400, 401, 403, 404, 422})


class PlatformRestClient(PlatformHttpClient, SecondaryTransportPort):
    """REST object search against the platform.

    Args:
        host: Platform base URL
        ontology_id: Ontology API identifier (``ontology-<uuid>`` form)
        token_provider: Client-credentials token provider dedicated to this client
        http_client: Optional shared ``httpx.AsyncClient``
        breaker: Circuit breaker guarding API calls
    """

    def __init__(
        self,
        host: str,
        ontology_id: str,
        token_provider: ClientCredentialsTokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = 30.0
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.host = (host or "").rstrip("/")
        self.ontology_id = ontology_id
        self.token_provider = token_provider
        self.breaker = breaker or CircuitBreaker(CircuitBreakerConfig(), name="platform-api")

    def search_url(self, object_type: str) -> str:
        return f"{self.host}/api/v2/ontologies/{self.ontology_id}/objects/{object_type}/search"

    async def search_objects(
        self,
        object_type: str,
        where: Dict[str, Any],
        page_size: int,
        page_token: Optional[str] = None,
        select: Optional[list] = None
    ) -> Dict[str, Any]:
        """Search one page of objects.

        Parameters:
            object_type: Platform object type API name
            where: Filter expression tree
            page_size: Clamped page size
            page_token: Opaque continuation token
            select: Optional list of properties to return

        Returns:
            dict: Raw platform response body

        Raises:
            CircuitBreakerOpenError: If the API circuit is open
            PlatformAPIError: On token, network or non-2xx failures
        """
        self.breaker.ensure_closed()

        body: Dict[str, Any] = {"where": where, "pageSize": page_size}
        if page_token:
            body["pageToken"] = page_token
        if select:
            body["select"] = list(select)

        try:
            token = await self.token_provider.get_token()
            payload = await self._post_json(self.search_url(object_type), body, token)
        except PlatformAPIError as e:
            if e.status_code == 401:
                self.token_provider.invalidate()
            if e.status_code not in _BREAKER_NEUTRAL_STATUSES:
                self.breaker.record_result(Result.failure_result(e, error_details={"object_type": object_type}))
            logger.warning(f"REST search for {object_type} failed: {str(e)}")
            raise

        self.breaker.record_result(Result.success_result(None))
        return payload
