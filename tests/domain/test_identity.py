"""Tests for the Identity Resolver."""

from unittest.mock import AsyncMock

import pytest

from clinical_gateway.domain.identity import (
    OVERRIDE_FIRST_POLICY,
    SUBJECT_FIRST_POLICY,
    CandidateKind,
    IdentityResolver,
    ResolutionPolicy,
    extract_profile_identifier,
)
from clinical_gateway.domain.models import IdentitySource, RequestContext
from clinical_gateway.domain.ports import MissingIdentityError, PlatformAPIError


@pytest.fixture
def context():
    return RequestContext(correlation_id="cid-1")


@pytest.fixture
def profile_lookup():
    lookup = AsyncMock()
    lookup.lookup.return_value = None
    return lookup


class TestBuildCandidates:
    """Tests for candidate ordering."""

    def test_native_subject_short_circuits(self):
        """A native subject at the head is the only candidate."""
        resolver = IdentityResolver()
        candidates = resolver.build_candidates("auth0|abc123", {"preferred_username": "jdoe"}, "jdoe")

        assert [c.value for c in candidates] == ["auth0|abc123"]

    def test_override_ignored_unless_allowed(self):
        """The override is dropped when the policy does not allow it."""
        resolver = IdentityResolver()
        candidates = resolver.build_candidates("sub-1", {}, None, "override-1", SUBJECT_FIRST_POLICY)

        assert [c.kind for c in candidates] == [CandidateKind.SUBJECT]

    def test_override_first_policy_order(self):
        resolver = IdentityResolver()
        candidates = resolver.build_candidates(
            "auth0|sub", {"email": "a@example.com"}, "jdoe", "override-1", OVERRIDE_FIRST_POLICY
        )

        assert [c.value for c in candidates] == ["override-1", "auth0|sub", "jdoe", "a@example.com"]

    def test_duplicates_and_blanks_removed(self):
        """Duplicate and blank values appear once, under their first kind."""
        resolver = IdentityResolver()
        candidates = resolver.build_candidates(
            "jdoe", {"preferred_username": "jdoe", "nickname": "  ", "email": "j@x.org"}, "jdoe"
        )

        assert [(c.value, c.kind) for c in candidates] == [
            ("jdoe", CandidateKind.SUBJECT),
            ("j@x.org", CandidateKind.USERNAME),
        ]


class TestResolve:
    """Tests for identity resolution."""

    @pytest.mark.asyncio
    async def test_native_subject_resolves_without_lookup(self, context, profile_lookup):
        """A platform-native subject resolves to itself with no platform call."""
        resolver = IdentityResolver(profile_lookup=profile_lookup)

        patient = await resolver.resolve(context, "auth0|abc123", {})

        assert patient.resolved_id == "auth0|abc123"
        assert patient.source == IdentitySource.SUBJECT_CLAIM
        assert patient.looked_up_via_platform is False
        profile_lookup.lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_profile_match_wins(self, context, profile_lookup):
        """A matching profile supplies the resolved identifier."""
        profile_lookup.lookup.side_effect = [None, {"properties": {"user_id": "auth0|real"}}]
        resolver = IdentityResolver(profile_lookup=profile_lookup)

        patient = await resolver.resolve(context, "legacy-sub", {"preferred_username": "jdoe"})

        assert patient.resolved_id == "auth0|real"
        assert patient.matched_identifier == "jdoe"
        assert patient.source == IdentitySource.PLATFORM_PROFILE
        assert patient.looked_up_via_platform is True

    @pytest.mark.asyncio
    async def test_lookup_errors_move_to_next_candidate(self, context, profile_lookup):
        """A failed lookup is logged and the next candidate is tried."""
        profile_lookup.lookup.side_effect = [PlatformAPIError(500, "boom"), {"patientId": "p-7"}]
        resolver = IdentityResolver(profile_lookup=profile_lookup)

        patient = await resolver.resolve(context, "legacy-sub", {"nickname": "jd"})

        assert patient.resolved_id == "p-7"
        assert profile_lookup.lookup.await_count == 2

    @pytest.mark.asyncio
    async def test_fallback_to_subject(self, context, profile_lookup):
        """With no profile match, the highest-priority candidate is used as-is."""
        resolver = IdentityResolver(profile_lookup=profile_lookup)

        patient = await resolver.resolve(context, "legacy-sub", {"preferred_username": "jdoe"})

        assert patient.resolved_id == "legacy-sub"
        assert patient.source == IdentitySource.SUBJECT_CLAIM
        assert patient.looked_up_via_platform is False

    @pytest.mark.asyncio
    async def test_fallback_to_override_when_allowed(self, context):
        resolver = IdentityResolver()

        patient = await resolver.resolve(context, "legacy-sub", {}, "p-99", OVERRIDE_FIRST_POLICY)

        assert patient.resolved_id == "p-99"
        assert patient.source == IdentitySource.QUERY_OVERRIDE

    @pytest.mark.asyncio
    async def test_username_fallback(self, context):
        """Only a username is available."""
        context.username = "jdoe"
        resolver = IdentityResolver()

        patient = await resolver.resolve(context, None, {})

        assert patient.resolved_id == "jdoe"
        assert patient.source == IdentitySource.USERNAME_CLAIM

    @pytest.mark.asyncio
    async def test_nothing_resolves(self, context):
        """With no candidates the result is unresolved with no source."""
        patient = await IdentityResolver().resolve(context, "  ", {})

        assert patient.resolved_id == ""
        assert patient.source is None
        assert not patient.is_resolved

    @pytest.mark.asyncio
    async def test_memoized_per_request(self, context, profile_lookup):
        """Resolution runs once per request context."""
        resolver = IdentityResolver(profile_lookup=profile_lookup)

        first = await resolver.resolve(context, "legacy-sub", {})
        second = await resolver.resolve(context, "other-sub", {})

        assert first is second
        assert profile_lookup.lookup.await_count == 1

    @pytest.mark.asyncio
    async def test_resolve_required_raises(self, context):
        with pytest.raises(MissingIdentityError) as exc_info:
            await IdentityResolver().resolve_required(context, None, {})
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "MISSING_IDENTITY"

    @pytest.mark.asyncio
    async def test_allowed_override_with_subject_first_policy(self, context):
        """An allowed override still ranks below the subject."""
        policy = ResolutionPolicy(allow_query_override=True)

        patient = await IdentityResolver().resolve(context, "legacy-sub", {}, "p-1", policy)

        assert patient.resolved_id == "legacy-sub"


class TestExtractProfileIdentifier:
    """Tests for picking the identifier out of a profile."""

    def test_priority_order(self):
        profile = {"patientId": "p", "auth0id": "auth0|a", "userId": "u"}
        assert extract_profile_identifier(profile, "cand") == "u"

    def test_envelope_unwrapped(self):
        assert extract_profile_identifier({"properties": {"auth0_user_id": "x"}}, "cand") == "x"

    def test_candidate_as_last_resort(self):
        assert extract_profile_identifier({"name": "Jane"}, "cand") == "cand"
