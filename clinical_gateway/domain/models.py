"""Domain value types for identity resolution and platform queries.

These are plain dataclasses, frozen where they are shared: they travel between
the resolver, the Query Gateway and the cache, and never cross the HTTP
boundary directly.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Leaf: {"type": "eq", "field": str, "value": str}
# Node: {"type": "and" | "or", "value": [FilterExpression, ...]}
FilterExpression = Dict[str, Any]

NormalizedRecord = Dict[str, Any]


class IdentitySource(str, Enum):
    """Where a resolved patient identifier came from."""
    PLATFORM_PROFILE = "platform-profile"
    SUBJECT_CLAIM = "subject-claim"
    QUERY_OVERRIDE = "query-override"
    USERNAME_CLAIM = "username-claim"


class SortDirection(str, Enum):
    """Sort direction accepted from callers."""
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class PatientContext:
    """Resolved identity for the current request.

    Attributes:
        resolved_id: Platform record identifier used to filter clinical data
        matched_identifier: Candidate that produced the resolved id
        source: Which kind of candidate won (None when nothing resolved)
        looked_up_via_platform: True when a platform profile lookup matched
    """
    resolved_id: str
    matched_identifier: str
    source: Optional[IdentitySource]
    looked_up_via_platform: bool = False

    @property
    def is_resolved(self) -> bool:
        return bool(self.resolved_id)

    def to_dict(self) -> dict:
        return {
            "resolvedId": self.resolved_id,
            "matchedIdentifier": self.matched_identifier,
            "source": self.source.value if self.source else None,
            "lookedUpViaPlatform": self.looked_up_via_platform,
        }


@dataclass(frozen=True)
class SortSpec:
    """Parsed caller sort hint. Participates in the cache key only."""
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class QueryShape:
    """Canonical cache key for one gateway query.

    Two logically identical queries serialize to the same string regardless
    of argument order, because serialization sorts keys.
    """
    resolved_patient_id: str
    page_size: int
    page_token: Optional[str]
    sort_field: str
    sort_direction: SortDirection
    category: Optional[str] = None

    def serialize(self) -> str:
        data: Dict[str, Any] = {
            "patientId": self.resolved_patient_id,
            "pageSize": self.page_size,
            "pageToken": self.page_token,
            "sortField": self.sort_field,
            "sortDirection": self.sort_direction.value,
        }
        if self.category:
            data["category"] = self.category
        return json.dumps(data, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class NormalizedResultSet:
    """A page of normalized records as cached and returned by the gateway."""
    records: List[NormalizedRecord]
    next_page_token: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the monotonic timestamp after which it is stale."""
    expires_at: float
    payload: Any

    def is_live(self, now: float) -> bool:
        return self.expires_at > now


class OutcomeKind(str, Enum):
    """Classification of a primary transport call."""
    OK = "ok"
    THROTTLED = "throttled"
    INVALID = "invalid"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class TransportOutcome:
    """Explicit result of a primary transport call.

    The Query Gateway matches on ``kind`` to decide between normalizing,
    surfacing an error, or falling back to the secondary transport.
    """
    kind: OutcomeKind
    payload: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, payload: Dict[str, Any]) -> 'TransportOutcome':
        return cls(kind=OutcomeKind.OK, payload=payload)

    @classmethod
    def throttled(cls, message: str, error: Optional[BaseException] = None) -> 'TransportOutcome':
        return cls(kind=OutcomeKind.THROTTLED, message=message, error=error)

    @classmethod
    def invalid(cls, message: str, error: Optional[BaseException] = None) -> 'TransportOutcome':
        return cls(kind=OutcomeKind.INVALID, message=message, error=error)

    @classmethod
    def transport_failure(cls, error: BaseException) -> 'TransportOutcome':
        return cls(kind=OutcomeKind.TRANSPORT_FAILURE, message=str(error), error=error)


@dataclass
class RequestContext:
    """Per-request state, discarded when the request completes.

    Attributes:
        correlation_id: Identifier echoed in responses and stamped on logs
        username: Propagated username (header first, then token claims)
        patient_context: Memoized identity resolution for this request
    """
    correlation_id: str
    username: Optional[str] = None
    patient_context: Optional[PatientContext] = None
