"""Object Type Catalogue.

Each clinical record kind the gateway serves is described once here: its
canonical primary key, the ordered source aliases for every canonical field,
the fields carrying boolean-like values, the identity fields a patient filter
may reference, and the sort fields callers may name.

The Field Normalizer, the Filter Builder and query parameter parsing all read
from this table; none of them branch on the object type themselves.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

# Platform identity markers present on every object
PRIMARY_KEY_MARKER = "$primaryKey"
RESOURCE_MARKERS = ("$rid", "rid")

# Identity fields used by patient filters
CANONICAL_IDENTITY_FIELD = "auth0id"
HISTORICAL_IDENTITY_FIELDS = ("patientId", "auth0id", "user_id", "userId")

PATIENT_ID_ALIASES = ("patientId", "patient_id", "patient", "auth0id")


@dataclass(frozen=True)
class CategoryMapping:
    """How a caller-facing category value appears in the platform's taxonomy."""
    code: str
    display: str


@dataclass(frozen=True)
class ObjectTypeDefinition:
    """Static description of one clinical object type.

    Attributes:
        key: Caller-facing name (route segment), e.g. "clinical-notes"
        primary_key: Canonical primary key field, e.g. "noteId"
        aliases: Canonical field -> ordered source aliases
        boolean_fields: Canonical fields coerced from textual booleans
        identity_fields: Fields an `or` patient filter may reference
        sort_fields: Sort fields callers may request (first is the default)
        category_code_field: Platform field holding category codes
        category_display_field: Platform field holding category display text
    """
    key: str
    primary_key: str
    aliases: Mapping[str, Tuple[str, ...]]
    boolean_fields: Tuple[str, ...] = ()
    identity_fields: Tuple[str, ...] = HISTORICAL_IDENTITY_FIELDS
    sort_fields: Tuple[str, ...] = ()
    category_code_field: Optional[str] = None
    category_display_field: Optional[str] = None
    category_mappings: Mapping[str, CategoryMapping] = field(default_factory=dict)

    @property
    def default_sort_field(self) -> str:
        return self.sort_fields[0] if self.sort_fields else self.primary_key

    @property
    def filter_fields(self) -> Tuple[str, ...]:
        """Every field a filter leaf for this type may reference."""
        fields = (CANONICAL_IDENTITY_FIELD,) + tuple(self.identity_fields)
        if self.category_code_field:
            fields += (self.category_code_field,)
        if self.category_display_field:
            fields += (self.category_display_field,)
        return tuple(dict.fromkeys(fields))


def _primary_key_aliases(canonical: str, *extra: str) -> Tuple[str, ...]:
    snake = canonical[:-2] + "_id" if canonical.endswith("Id") else canonical
    snake = "".join("_" + c.lower() if c.isupper() else c for c in snake)
    return (canonical, snake) + extra + ("id", PRIMARY_KEY_MARKER) + RESOURCE_MARKERS


CONDITIONS = ObjectTypeDefinition(
    key="conditions",
    primary_key="conditionId",
    aliases={
        "conditionId": _primary_key_aliases("conditionId"),
        "patientId": PATIENT_ID_ALIASES,
        "conditionDisplay": ("conditionDisplay", "condition_display", "conditionName", "condition_name",
                             "codeDisplay", "display", "description"),
        "conditionCode": ("conditionCode", "condition_code", "snomedCode", "code"),
        "clinicalStatus": ("clinicalStatus", "clinical_status", "status"),
        "verificationStatus": ("verificationStatus", "verification_status"),
        "category": ("category", "categoryDisplay", "category_display"),
        "recordedDate": ("recordedDate", "recorded_date", "dateRecorded", "date"),
        "onsetDatetime": ("onsetDatetime", "onsetDate", "onset_date", "onset"),
        "abatementDatetime": ("abatementDatetime", "abatementDate", "abatement_date", "abatement"),
        "isActive": ("isActive", "is_active", "active"),
    },
    boolean_fields=("isActive",),
    sort_fields=("recordedDate", "onsetDatetime", "conditionDisplay"),
)

OBSERVATIONS = ObjectTypeDefinition(
    key="observations",
    primary_key="observationId",
    aliases={
        "observationId": _primary_key_aliases("observationId", "vitalId", "vital_id"),
        "patientId": PATIENT_ID_ALIASES,
        "observationDate": ("observationDate", "observation_date", "effectiveDatetime", "effectiveDate",
                            "effective_date", "date", "timestamp"),
        "category": ("category", "categoryDisplay", "category_display"),
        "categoryCode": ("categoryCode", "category_code"),
        "code": ("code", "loincCode", "observationCode"),
        "codeDisplay": ("codeDisplay", "code_display", "display", "vitalType", "observationName"),
        "valueNumeric": ("valueNumeric", "value_numeric", "valueQuantity", "value"),
        "valueString": ("valueString", "value_string"),
        "valueUnit": ("valueUnit", "value_unit", "unit", "units"),
        "status": ("status", "observationStatus"),
        "interpretation": ("interpretation", "interpretationDisplay"),
    },
    sort_fields=("observationDate", "codeDisplay", "category"),
    category_code_field="categoryCode",
    category_display_field="category",
    category_mappings={
        "vital-signs": CategoryMapping(code="vital-signs", display="Vital Signs"),
        "laboratory": CategoryMapping(code="laboratory", display="Laboratory"),
        "social-history": CategoryMapping(code="social-history", display="Social History"),
    },
)

PROCEDURES = ObjectTypeDefinition(
    key="procedures",
    primary_key="procedureId",
    aliases={
        "procedureId": _primary_key_aliases("procedureId"),
        "patientId": PATIENT_ID_ALIASES,
        "procedureDisplay": ("procedureDisplay", "procedure_display", "procedureName", "codeDisplay",
                             "display", "description"),
        "procedureCode": ("procedureCode", "procedure_code", "code"),
        "performedDate": ("performedDate", "performed_date", "performedDatetime", "performedPeriodStart", "date"),
        "status": ("status", "procedureStatus"),
        "bodySite": ("bodySite", "body_site"),
        "performer": ("performer", "performerName", "practitionerName"),
        "encounterId": ("encounterId", "encounter_id"),
    },
    sort_fields=("performedDate", "procedureDisplay"),
)

IMMUNIZATIONS = ObjectTypeDefinition(
    key="immunizations",
    primary_key="immunizationId",
    aliases={
        "immunizationId": _primary_key_aliases("immunizationId"),
        "patientId": PATIENT_ID_ALIASES,
        "vaccineDisplay": ("vaccineDisplay", "vaccine_display", "vaccineName", "vaccine", "display"),
        "vaccineCode": ("vaccineCode", "vaccine_code", "cvxCode", "code"),
        "occurrenceDate": ("occurrenceDate", "occurrence_date", "occurrenceDatetime", "administeredDate", "date"),
        "status": ("status", "immunizationStatus"),
        "lotNumber": ("lotNumber", "lot_number"),
        "doseNumber": ("doseNumber", "dose_number"),
        "site": ("site", "siteDisplay"),
        "primarySource": ("primarySource", "primary_source"),
    },
    boolean_fields=("primarySource",),
    sort_fields=("occurrenceDate", "vaccineDisplay"),
)

ALLERGIES = ObjectTypeDefinition(
    key="allergies",
    primary_key="allergyId",
    aliases={
        "allergyId": _primary_key_aliases("allergyId", "allergyIntoleranceId"),
        "patientId": PATIENT_ID_ALIASES,
        "substance": ("substance", "substanceDisplay", "allergen", "codeDisplay", "display"),
        "substanceCode": ("substanceCode", "substance_code", "code"),
        "reaction": ("reaction", "reactionDisplay", "manifestation"),
        "severity": ("severity", "reactionSeverity"),
        "criticality": ("criticality",),
        "category": ("category", "allergyCategory"),
        "clinicalStatus": ("clinicalStatus", "clinical_status", "status"),
        "recordedDate": ("recordedDate", "recorded_date", "onsetDate", "date"),
        "isActive": ("isActive", "is_active", "active"),
    },
    boolean_fields=("isActive",),
    sort_fields=("recordedDate", "substance"),
)

CLINICAL_NOTES = ObjectTypeDefinition(
    key="clinical-notes",
    primary_key="noteId",
    aliases={
        "noteId": _primary_key_aliases("noteId", "clinicalNoteId", "documentId"),
        "patientId": PATIENT_ID_ALIASES,
        "documentDate": ("documentDate", "document_date", "noteDate", "createdAt", "date", "timestamp"),
        "encounterId": ("encounterId", "encounter_id"),
        "noteType": ("noteType", "note_type", "documentType", "type"),
        "title": ("title", "noteTitle", "description"),
        "author": ("author", "authorName", "practitionerName"),
        "content": ("content", "noteText", "text", "body"),
        "status": ("status", "docStatus"),
    },
    sort_fields=("documentDate", "encounterId"),
)

ENCOUNTERS = ObjectTypeDefinition(
    key="encounters",
    primary_key="encounterId",
    aliases={
        "encounterId": ("encounterId", "encounter_id", "id", PRIMARY_KEY_MARKER) + RESOURCE_MARKERS,
        "patientId": ("patientId", "patient_id", "patient"),
        "periodStart": ("periodStart", "startDate", "start", "startTimestamp", "start_date"),
        "periodEnd": ("periodEnd", "endDate", "end", "endTimestamp", "end_date"),
        "typeDisplay": ("typeDisplay", "encounterType", "type", "encounter_type"),
        "classDisplay": ("classDisplay", "encounterClass", "class", "encounter_class"),
        "practitionerName": ("practitionerName", "serviceProvider", "providerName", "provider"),
        "locationName": ("locationName", "location", "facility"),
        "encounterTypeCode": ("encounterTypeCode", "typeCode", "code"),
        "status": ("status", "encounterStatus"),
        "reasonDisplay": ("reasonDisplay", "reason"),
    },
    identity_fields=("patientId", "auth0id"),
    sort_fields=("periodStart", "periodEnd", "typeDisplay", "classDisplay", "encounterId"),
)

OBJECT_TYPES: Dict[str, ObjectTypeDefinition] = {
    definition.key: definition
    for definition in (
        CONDITIONS,
        OBSERVATIONS,
        PROCEDURES,
        IMMUNIZATIONS,
        ALLERGIES,
        CLINICAL_NOTES,
        ENCOUNTERS,
    )
}


def get_object_type(key: str) -> ObjectTypeDefinition:
    """Look up an object type definition by its caller-facing key.

    Raises:
        KeyError: If the key is not a known object type
    """
    try:
        return OBJECT_TYPES[key]
    except KeyError:
        raise KeyError(f"Unknown object type: {key}. Known: {sorted(OBJECT_TYPES)}") from None
