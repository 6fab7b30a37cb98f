"""Field Normalizer.

Maps heterogeneous platform records onto one canonical shape per object type,
driven entirely by the alias tables in ``clinical_gateway.domain.catalog``.

Records may carry their data at the top level, under a ``properties``
envelope, or split across both. Both levels are merged (envelope values win)
so nothing is lost, and every unmatched field passes through unchanged.

Architecture:
    - Pure functions, total over any input: missing fields stay absent
    - No per-endpoint branching; a new object type only needs a catalogue entry
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from clinical_gateway.domain.catalog import ObjectTypeDefinition, get_object_type
from clinical_gateway.domain.models import NormalizedRecord

logger = logging.getLogger(__name__)

PROPERTIES_ENVELOPE = "properties"

# Container keys the platform may use for a page of objects, in probe order
RESULT_CONTAINER_KEYS = ("data", "objects", "results", "entries")

# Fields the platform may use for the continuation token, in probe order
NEXT_PAGE_TOKEN_KEYS = ("nextPageToken", "next_page_token", "pageToken")

_TRUE_TEXT = frozenset({"true", "yes"})
_FALSE_TEXT = frozenset({"false", "no"})


def _is_present(value: Any) -> bool:
    """A value counts when it is a non-null scalar and not a blank string."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return isinstance(value, (bool, int, float))


def unwrap_record(raw: Any) -> Dict[str, Any]:
    """Flatten a raw record, merging a ``properties`` envelope over its outer fields.

    Parameters:
        raw: Record as returned by the platform

    Returns:
        New flat dictionary; non-mapping input yields an empty dictionary
    """
    if not isinstance(raw, Mapping):
        return {}

    flat = {key: value for key, value in raw.items() if key != PROPERTIES_ENVELOPE}
    envelope = raw.get(PROPERTIES_ENVELOPE)
    if isinstance(envelope, Mapping):
        flat.update(envelope)
    elif PROPERTIES_ENVELOPE in raw:
        flat[PROPERTIES_ENVELOPE] = envelope
    return flat


def pick_first(record: Mapping[str, Any], aliases: Iterable[str]) -> Optional[Any]:
    """Return the first present value among the given aliases, verbatim."""
    for alias in aliases:
        value = record.get(alias)
        if _is_present(value):
            return value
    return None


def coerce_boolean(value: Any) -> Any:
    """Coerce textual true/false/yes/no to bool; anything else is returned as-is."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    return value


def normalize_record(definition: ObjectTypeDefinition, raw: Any) -> NormalizedRecord:
    """Normalize one record against an object type definition.

    Parameters:
        definition: Object type whose alias table applies
        raw: Raw platform record (flat or enveloped)

    Returns:
        Flat record with canonical fields filled where any alias carried a value
    """
    flat = unwrap_record(raw)
    normalized: Dict[str, Any] = dict(flat)

    for canonical, aliases in definition.aliases.items():
        value = pick_first(flat, aliases)
        if value is None:
            continue
        if canonical in definition.boolean_fields:
            value = coerce_boolean(value)
        normalized[canonical] = value

    primary = normalized.get(definition.primary_key)
    if primary is not None and not _is_present(normalized.get("id")):
        normalized["id"] = primary

    return normalized


def normalize(object_type: str, raw: Any) -> NormalizedRecord:
    """Normalize one record for the object type with the given caller-facing key."""
    return normalize_record(get_object_type(object_type), raw)


def extract_records(response: Any) -> List[Any]:
    """Collect records from every container key present in a platform response.

    Containers are concatenated in probe order; non-list containers are ignored.
    """
    if not isinstance(response, Mapping):
        return []

    records: List[Any] = []
    for key in RESULT_CONTAINER_KEYS:
        container = response.get(key)
        if isinstance(container, list):
            records.extend(container)
    return records


def extract_next_page_token(response: Any) -> Optional[str]:
    """Return the continuation token from whichever field the platform populated."""
    if not isinstance(response, Mapping):
        return None
    for key in NEXT_PAGE_TOKEN_KEYS:
        token = response.get(key)
        if isinstance(token, str) and token:
            return token
    return None


def normalize_response(
    definition: ObjectTypeDefinition,
    response: Any
) -> Tuple[List[NormalizedRecord], Optional[str]]:
    """Normalize every record of a platform page.

    Parameters:
        definition: Object type whose alias table applies
        response: Raw platform response body

    Returns:
        Tuple of (normalized records, next page token)
    """
    raw_records = extract_records(response)
    records = [normalize_record(definition, raw) for raw in raw_records]
    logger.debug(f"Normalized {len(records)} {definition.key} records")
    return records, extract_next_page_token(response)
