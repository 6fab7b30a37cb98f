"""Typed object-set client (primary transport).

Exposes the platform's object sets as a small fluent API:

    page = await client.objects("Conditions").where(filter_expr).fetch_page(page_size=25)

Object sets are described declaratively (a base set of one object type, wrapped
in filter sets) and loaded through the platform's ``objectSets/loadObjects``
endpoint, so this path does not share an endpoint with the REST search transport.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from clinical_gateway.adapters.platform.http import PlatformHttpClient
from clinical_gateway.domain.models import FilterExpression
from clinical_gateway.domain.ports import PlatformAPIError, PrimaryTransportPort

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    async def get_token(self) -> str:
        ...


class ObjectSet:
    """Immutable description of a set of platform objects."""

    def __init__(self, client: 'ObjectSetClient', definition: Dict[str, Any]):
        self._client = client
        self.definition = definition

    def where(self, expression: FilterExpression) -> 'ObjectSet':
        """Narrow the set with a filter expression."""
        return ObjectSet(self._client, {"type": "filter", "objectSet": self.definition, "where": expression})

    async def fetch_page(self, page_size: int = 25, page_token: Optional[str] = None) -> Dict[str, Any]:
        """Load one page of the set.

        Returns:
            dict: Platform response (``data`` plus ``nextPageToken`` when more pages exist)
        """
        return await self._client.load_objects(self.definition, page_size, page_token)


class ObjectSetClient(PlatformHttpClient, PrimaryTransportPort):
    """Primary platform transport built on declarative object sets.

    Args:
        host: Platform base URL
        ontology_id: Ontology API identifier (``ontology-<uuid>`` form)
        token_provider: Source of bearer tokens
        http_client: Optional shared ``httpx.AsyncClient``
    """

    def __init__(
        self,
        host: str,
        ontology_id: str,
        token_provider: TokenProvider,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        super().__init__(http_client=http_client, timeout=timeout)
        self.host = (host or "").rstrip("/")
        self.ontology_id = ontology_id
        self.token_provider = token_provider

    @property
    def _load_url(self) -> str:
        return f"{self.host}/api/v2/ontologies/{self.ontology_id}/objectSets/loadObjects"

    def objects(self, object_type: str) -> ObjectSet:
        """Start an object set over every object of one type."""
        return ObjectSet(self, {"type": "base", "objectType": object_type})

    async def load_objects(
        self,
        object_set: Dict[str, Any],
        page_size: int,
        page_token: Optional[str] = None
    ) -> Dict[str, Any]:
        if not self.host or not self.ontology_id:
            raise PlatformAPIError(0, "", error_name="NotConfigured",
                                   upstream_message="Typed client has no platform host or ontology")

        body: Dict[str, Any] = {"objectSet": object_set, "pageSize": page_size}
        if page_token:
            body["pageToken"] = page_token

        token = await self.token_provider.get_token()
        return await self._post_json(self._load_url, body, token)

    async def fetch_page(
        self,
        object_type: str,
        where: Dict[str, Any],
        page_size: int,
        page_token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.objects(object_type).where(where).fetch_page(page_size=page_size, page_token=page_token)
