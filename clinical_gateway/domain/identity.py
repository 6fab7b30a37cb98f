"""Identity Resolver.

Determines which platform record an authenticated caller maps to. The caller
presents several identity candidates (the verified token subject, an optional
caller-supplied override, and username-like claims); the resolver orders them
according to a per-endpoint ResolutionPolicy, asks the platform's profile
directory about each in turn, and falls back to the candidates themselves when
no profile matches.

Security Impact:
    - The verified subject outranks caller-supplied values unless an endpoint
      opts into an override-first policy
    - Overrides are ignored entirely unless the policy allows them
    - Identifier values are never logged, only the source that won

Architecture:
    - Depends only on ProfileLookupPort; the platform adapter is injected
    - The result is memoized on the request's RequestContext
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from clinical_gateway.domain.filters import DEFAULT_NATIVE_PREFIXES, is_platform_native
from clinical_gateway.domain.models import IdentitySource, PatientContext, RequestContext
from clinical_gateway.domain.ports import MissingIdentityError, ProfileLookupPort

logger = logging.getLogger(__name__)

# Claims consulted for username candidates, after the propagated username
USERNAME_CLAIMS = ("preferred_username", "nickname", "email")

# Profile fields holding the platform record identifier, in priority order
PROFILE_ID_FIELDS = ("user_id", "userId", "auth0id", "auth0_user_id", "patientId")


class CandidateKind(str, Enum):
    """Kinds of identity candidate, used to express a policy's priority order."""
    SUBJECT = "subject"
    QUERY_OVERRIDE = "query-override"
    USERNAME = "username"


_FALLBACK_SOURCES = {
    CandidateKind.SUBJECT: IdentitySource.SUBJECT_CLAIM,
    CandidateKind.QUERY_OVERRIDE: IdentitySource.QUERY_OVERRIDE,
    CandidateKind.USERNAME: IdentitySource.USERNAME_CLAIM,
}


@dataclass(frozen=True)
class ResolutionPolicy:
    """Per-endpoint identity priority.

    Attributes:
        allow_query_override: Whether a caller-supplied override is considered at all
        order: Priority of candidate kinds, used both for profile lookups and fallback
    """
    allow_query_override: bool = False
    order: Tuple[CandidateKind, ...] = (
        CandidateKind.SUBJECT,
        CandidateKind.QUERY_OVERRIDE,
        CandidateKind.USERNAME,
    )


SUBJECT_FIRST_POLICY = ResolutionPolicy()

OVERRIDE_FIRST_POLICY = ResolutionPolicy(
    allow_query_override=True,
    order=(CandidateKind.QUERY_OVERRIDE, CandidateKind.SUBJECT, CandidateKind.USERNAME),
)


@dataclass(frozen=True)
class IdentityCandidate:
    value: str
    kind: CandidateKind


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def extract_profile_identifier(profile: Mapping[str, Any], candidate: str) -> str:
    """Pick the platform record identifier out of a profile.

    Parameters:
        profile: Profile properties (a ``properties`` envelope is unwrapped)
        candidate: The candidate that matched, used as a last resort

    Returns:
        str: First non-empty profile identifier field, else the candidate
    """
    properties = profile.get("properties") if isinstance(profile.get("properties"), Mapping) else profile
    for field_name in PROFILE_ID_FIELDS:
        value = _clean(properties.get(field_name))
        if value:
            return value
    return candidate


class IdentityResolver:
    """Resolves the caller's platform record identifier.

    Example Usage:
        ```python
        resolver = IdentityResolver(profile_lookup=profile_directory)
        patient = await resolver.resolve(
            request_context,
            subject="auth0|abc123",
            claims={"preferred_username": "jdoe"},
        )
        ```
    """

    def __init__(
        self,
        profile_lookup: Optional[ProfileLookupPort] = None,
        native_prefixes: Sequence[str] = DEFAULT_NATIVE_PREFIXES
    ):
        """Initialize the resolver.

        Parameters:
            profile_lookup: Platform profile directory (None disables lookups)
            native_prefixes: Prefixes marking platform-native identifiers
        """
        self.profile_lookup = profile_lookup
        self.native_prefixes = tuple(native_prefixes)

    def build_candidates(
        self,
        subject: Optional[str],
        claims: Optional[Mapping[str, Any]] = None,
        username: Optional[str] = None,
        query_override: Optional[str] = None,
        policy: ResolutionPolicy = SUBJECT_FIRST_POLICY
    ) -> List[IdentityCandidate]:
        """Build the ordered, de-duplicated candidate list.

        Parameters:
            subject: Verified token subject
            claims: Verified token claims
            username: Username propagated on the request context
            query_override: Caller-supplied identifier
            policy: Priority order and override permission

        Returns:
            List of candidates, highest priority first
        """
        claims = claims or {}
        subject = _clean(subject)
        override = _clean(query_override) if policy.allow_query_override else None

        by_kind = {
            CandidateKind.SUBJECT: [subject],
            CandidateKind.QUERY_OVERRIDE: [override],
            CandidateKind.USERNAME: [_clean(username)] + [_clean(claims.get(name)) for name in USERNAME_CLAIMS],
        }

        candidates: List[IdentityCandidate] = []
        seen = set()
        for kind in policy.order:
            for value in by_kind.get(kind, []):
                if value and value not in seen:
                    seen.add(value)
                    candidates.append(IdentityCandidate(value=value, kind=kind))

        # A platform-native subject at the head of the list needs no alternatives
        if candidates and candidates[0].kind == CandidateKind.SUBJECT and self._is_native(candidates[0].value):
            return candidates[:1]
        return candidates

    def _is_native(self, value: str) -> bool:
        return is_platform_native(value, self.native_prefixes)

    async def _lookup_profiles(self, candidates: List[IdentityCandidate]) -> Optional[PatientContext]:
        """Ask the profile directory about each candidate until one matches."""
        if self.profile_lookup is None:
            return None

        for candidate in candidates:
            try:
                profile = await self.profile_lookup.lookup(candidate.value)
            except Exception as e:
                logger.warning(
                    f"Profile lookup failed for {candidate.kind.value} candidate, trying next: "
                    f"{type(e).__name__}: {str(e)}"
                )
                continue

            if profile:
                return PatientContext(
                    resolved_id=extract_profile_identifier(profile, candidate.value),
                    matched_identifier=candidate.value,
                    source=IdentitySource.PLATFORM_PROFILE,
                    looked_up_via_platform=True,
                )
        return None

    @staticmethod
    def _fallback(candidates: List[IdentityCandidate], policy: ResolutionPolicy) -> PatientContext:
        for kind in policy.order:
            for candidate in candidates:
                if candidate.kind == kind:
                    return PatientContext(
                        resolved_id=candidate.value,
                        matched_identifier=candidate.value,
                        source=_FALLBACK_SOURCES[kind],
                    )
        return PatientContext(resolved_id="", matched_identifier="", source=None)

    async def resolve(
        self,
        context: RequestContext,
        subject: Optional[str],
        claims: Optional[Mapping[str, Any]] = None,
        query_override: Optional[str] = None,
        policy: ResolutionPolicy = SUBJECT_FIRST_POLICY
    ) -> PatientContext:
        """Resolve the caller's platform identity, at most once per request.

        Parameters:
            context: Per-request context the result is memoized on
            subject: Verified token subject
            claims: Verified token claims
            query_override: Caller-supplied identifier
            policy: Priority order and override permission

        Returns:
            PatientContext: resolved_id is empty only when every candidate was empty
        """
        if context.patient_context is not None:
            return context.patient_context

        candidates = self.build_candidates(subject, claims, context.username, query_override, policy)

        patient: Optional[PatientContext] = None
        if len(candidates) == 1 and candidates[0].kind == CandidateKind.SUBJECT and self._is_native(candidates[0].value):
            patient = PatientContext(
                resolved_id=candidates[0].value,
                matched_identifier=candidates[0].value,
                source=IdentitySource.SUBJECT_CLAIM,
            )
        else:
            patient = await self._lookup_profiles(candidates)

        if patient is None:
            patient = self._fallback(candidates, policy)

        logger.info(
            f"Resolved patient identity: source={patient.source.value if patient.source else 'none'}, "
            f"lookedUpViaPlatform={patient.looked_up_via_platform}, candidates={len(candidates)}"
        )
        context.patient_context = patient
        return patient

    async def resolve_required(
        self,
        context: RequestContext,
        subject: Optional[str],
        claims: Optional[Mapping[str, Any]] = None,
        query_override: Optional[str] = None,
        policy: ResolutionPolicy = SUBJECT_FIRST_POLICY
    ) -> PatientContext:
        """Resolve identity, raising MissingIdentityError when nothing resolved."""
        patient = await self.resolve(context, subject, claims, query_override, policy)
        if not patient.is_resolved:
            raise MissingIdentityError("Unable to resolve a patient identity for this request")
        return patient
