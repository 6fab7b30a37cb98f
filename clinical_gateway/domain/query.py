"""Query parameter parsing for clinical reads.

Turns raw caller parameters (strings straight off the query string) into the
values the Query Gateway works with. Nothing here raises on bad input: an
invalid page size or sort falls back to its default.
"""

from typing import Any, Optional

from clinical_gateway.domain.catalog import ObjectTypeDefinition
from clinical_gateway.domain.models import QueryShape, SortDirection, SortSpec

DEFAULT_PAGE_SIZE = 25
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100


def clamp_page_size(raw: Any, default: int = DEFAULT_PAGE_SIZE) -> int:
    """Parse and clamp a page size to [1, 100].

    Parameters:
        raw: Caller-supplied page size (string, int or None)
        default: Value used when raw is absent or not an integer

    Returns:
        int: Page size within bounds
    """
    if isinstance(raw, bool):
        value = default
    elif isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except (TypeError, ValueError):
            value = default
    return max(MIN_PAGE_SIZE, min(value, MAX_PAGE_SIZE))


def normalize_page_token(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    token = raw.strip()
    return token or None


def normalize_category(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    category = raw.strip()
    return category or None


def parse_sort(raw: Optional[str], definition: ObjectTypeDefinition) -> SortSpec:
    """Parse a caller sort hint.

    Accepted forms are ``field:ASC``, ``field:DESC``, ``-field`` (descending),
    ``+field`` (ascending) and a bare ``field`` (descending). Fields outside the
    object type's allow-list fall back to its default sort field.

    Parameters:
        raw: Caller-supplied sort string
        definition: Object type whose sort allow-list applies

    Returns:
        SortSpec: Parsed field and direction
    """
    default = SortSpec(field=definition.default_sort_field, direction=SortDirection.DESC)
    if not raw or not raw.strip():
        return default

    text = raw.strip()
    direction = SortDirection.DESC

    if ":" in text:
        field, _, direction_text = text.partition(":")
        if direction_text.strip().upper() == SortDirection.ASC.value:
            direction = SortDirection.ASC
    elif text.startswith("-"):
        field = text[1:]
    elif text.startswith("+"):
        field = text[1:]
        direction = SortDirection.ASC
    else:
        field = text

    field = field.strip()
    if field not in definition.sort_fields:
        field = definition.default_sort_field
    return SortSpec(field=field, direction=direction)


def build_query_shape(
    resolved_id: str,
    page_size: int,
    page_token: Optional[str],
    sort: SortSpec,
    category: Optional[str] = None
) -> QueryShape:
    """Assemble the cache key for a query from already-parsed parameters."""
    return QueryShape(
        resolved_patient_id=resolved_id,
        page_size=page_size,
        page_token=page_token,
        sort_field=sort.field,
        sort_direction=sort.direction,
        category=category,
    )
