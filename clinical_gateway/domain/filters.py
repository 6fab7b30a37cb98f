"""Filter Builder.

Builds the platform's filter expression trees (``eq`` leaves under ``and``/``or``
nodes) for patient and category constraints. Building is pure: identical input
produces structurally identical trees, which matters because query shapes
derived from the same input are used as cache keys.
"""

from typing import List, Optional, Sequence

from clinical_gateway.domain.catalog import (
    CANONICAL_IDENTITY_FIELD,
    HISTORICAL_IDENTITY_FIELDS,
    CategoryMapping,
    ObjectTypeDefinition,
)
from clinical_gateway.domain.models import FilterExpression

DEFAULT_NATIVE_PREFIXES = ("auth0|",)


def is_platform_native(identifier: Optional[str], prefixes: Sequence[str] = DEFAULT_NATIVE_PREFIXES) -> bool:
    """Check whether an identifier already is the platform's canonical subject id."""
    if not isinstance(identifier, str):
        return False
    candidate = identifier.strip()
    return any(candidate.startswith(prefix) for prefix in prefixes)


def eq(field: str, value: str) -> FilterExpression:
    return {"type": "eq", "field": field, "value": value}


def and_(*expressions: FilterExpression) -> FilterExpression:
    return {"type": "and", "value": list(expressions)}


def or_(*expressions: FilterExpression) -> FilterExpression:
    return {"type": "or", "value": list(expressions)}


def build_patient_filter(
    resolved_id: str,
    identity_fields: Sequence[str] = HISTORICAL_IDENTITY_FIELDS,
    native_prefixes: Sequence[str] = DEFAULT_NATIVE_PREFIXES
) -> FilterExpression:
    """Build the patient constraint for a resolved identifier.

    Platform-native identifiers match only the canonical identity field. Any
    other identifier is matched against every historical identity field.

    Parameters:
        resolved_id: Resolved platform record identifier
        identity_fields: Historical identity fields for the object type
        native_prefixes: Prefixes marking platform-native identifiers

    Returns:
        FilterExpression: ``eq`` leaf or ``or`` of ``eq`` leaves

    Raises:
        ValueError: If resolved_id is empty
    """
    if not resolved_id:
        raise ValueError("Cannot build a patient filter without a resolved identifier")

    if is_platform_native(resolved_id, native_prefixes):
        return eq(CANONICAL_IDENTITY_FIELD, resolved_id)

    fields = list(dict.fromkeys(identity_fields))
    if len(fields) == 1:
        return eq(fields[0], resolved_id)
    return or_(*(eq(field, resolved_id) for field in fields))


def build_category_filter(
    category: str,
    mapping: Optional[CategoryMapping] = None,
    code_field: str = "categoryCode",
    display_field: str = "category"
) -> FilterExpression:
    """Build the category constraint.

    When the platform's taxonomy spells the category differently from the
    caller-facing value, match either the code or the display field.

    Parameters:
        category: Caller-facing category value
        mapping: Platform code/display spelling for the category, if known
        code_field: Platform field carrying category codes
        display_field: Platform field carrying category display text

    Returns:
        FilterExpression: ``eq`` leaf or ``or`` across code and display
    """
    if mapping is None or mapping.display == category:
        return eq(display_field, category)
    return or_(eq(code_field, mapping.code), eq(display_field, mapping.display))


def build_query_filter(
    definition: ObjectTypeDefinition,
    resolved_id: str,
    category: Optional[str] = None,
    native_prefixes: Sequence[str] = DEFAULT_NATIVE_PREFIXES
) -> FilterExpression:
    """Combine the patient filter with an optional category filter.

    Parameters:
        definition: Object type being queried
        resolved_id: Resolved platform record identifier
        category: Optional caller-facing category
        native_prefixes: Prefixes marking platform-native identifiers

    Returns:
        FilterExpression: The patient filter alone, or ``and`` of patient and category
    """
    patient_filter = build_patient_filter(resolved_id, definition.identity_fields, native_prefixes)
    if not category or not definition.category_display_field:
        return patient_filter

    category_filter = build_category_filter(
        category,
        definition.category_mappings.get(category),
        code_field=definition.category_code_field or definition.category_display_field,
        display_field=definition.category_display_field,
    )
    return and_(patient_filter, category_filter)


def referenced_fields(expression: FilterExpression) -> List[str]:
    """List every field referenced by the leaves of a filter tree, in order."""
    if expression.get("type") == "eq":
        return [expression["field"]]
    fields: List[str] = []
    for child in expression.get("value", []):
        fields.extend(referenced_fields(child))
    return fields
