"""Patient profile directory backed by the platform's profile object type.

Profiles are stored under a single object type whose identity field name has
changed over time, so a lookup tries each known field in turn.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from clinical_gateway.adapters.platform.rest_client import PlatformRestClient
from clinical_gateway.domain.filters import eq
from clinical_gateway.domain.normalizer import extract_records
from clinical_gateway.domain.ports import PlatformAPIError, ProfileLookupPort

logger = logging.getLogger(__name__)

PROFILE_LOOKUP_FIELDS = ("auth0id", "patientId", "user_id", "userId", "auth0_user_id")

PROFILE_LOOKUP_PAGE_SIZE = 10

# A field the object type does not have comes back as one of these
_FIELD_MISS_STATUSES = frozenset({400, 404})


def profile_properties(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a profile's properties, unwrapping a ``properties`` envelope."""
    envelope = record.get("properties")
    if isinstance(envelope, Mapping):
        return dict(envelope)
    return dict(record)


def profile_rid(properties: Mapping[str, Any]) -> Optional[str]:
    for key in ("$primaryKey", "$rid", "rid", "id"):
        value = properties.get(key)
        if value:
            return str(value)
    return None


class PlatformProfileDirectory(ProfileLookupPort):
    """Looks up patient profiles over the REST transport.

    Args:
        client: REST client used for searches
        object_type: Profile object type API name
        lookup_fields: Identity fields tried in order
    """

    def __init__(
        self,
        client: PlatformRestClient,
        object_type: str = "A",
        lookup_fields: Sequence[str] = PROFILE_LOOKUP_FIELDS
    ):
        self.client = client
        self.object_type = object_type
        self.lookup_fields = tuple(lookup_fields)

    async def search(
        self,
        value: str,
        fields: Optional[Sequence[str]] = None,
        limit: int = PROFILE_LOOKUP_PAGE_SIZE
    ) -> List[Dict[str, Any]]:
        """Return profiles whose first matching field equals value.

        Parameters:
            value: Identifier to search for
            fields: Fields to try in order (defaults to lookup_fields)
            limit: Page size for each attempt

        Returns:
            List of profile property dicts from the first field that matched (empty if none)

        Raises:
            PlatformAPIError: For failures other than a missing field
        """
        for field_name in list(dict.fromkeys(fields or self.lookup_fields)):
            try:
                response = await self.client.search_objects(
                    self.object_type, eq(field_name, value), page_size=limit
                )
            except PlatformAPIError as e:
                if e.status_code in _FIELD_MISS_STATUSES:
                    logger.debug(f"Profile field {field_name} not searchable ({e.status_code}), trying next")
                    continue
                raise

            records = [profile_properties(r) for r in extract_records(response) if isinstance(r, Mapping)]
            if records:
                logger.info(f"Profile search matched on field {field_name} ({len(records)} records)")
                return records

        return []

    async def lookup(self, candidate: str) -> Optional[Dict[str, Any]]:
        profiles = await self.search(candidate)
        return profiles[0] if profiles else None
