"""Shared fixtures for API tests."""

import time
from unittest.mock import AsyncMock

import jwt
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from clinical_gateway.adapters.cache import InMemoryTTLCache
from clinical_gateway.api import dependencies
from clinical_gateway.api.auth import TokenVerifier
from clinical_gateway.api.main import app
from clinical_gateway.domain.identity import IdentityResolver
from clinical_gateway.infrastructure.config_manager import AuthConfig, ConfigManager
from clinical_gateway.infrastructure.settings import Settings
from clinical_gateway.services.query_gateway import QueryGateway

TEST_SECRET = "unit-test-shared-secret-at-least-32-bytes"
AUDIENCE = "https://api.atlas.ai"


def make_token(subject="auth0|abc123", scope="read:patient", expires_in=600, **claims):
    """Sign an HS256 token accepted by the test verifier."""
    payload = {"aud": AUDIENCE, "exp": int(time.time()) + expires_in, "scope": scope, **claims}
    if subject is not None:
        payload["sub"] = subject
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def build_auth_headers(**kwargs):
    return {"Authorization": f"Bearer {make_token(**kwargs)}"}


@pytest.fixture
def test_settings():
    return Settings(ConfigManager({
        "platform": {"host": "https://platform.example.com", "ontology_rid": "ri.ontology.main.ontology.1234"},
        "auth": {"shared_secret": TEST_SECRET},
        "gateway": {"allow_query_override": False},
    }))


@pytest.fixture
def primary():
    transport = AsyncMock()
    transport.fetch_page.return_value = {"data": []}
    return transport


@pytest.fixture
def secondary():
    transport = AsyncMock()
    transport.search_objects.return_value = {"data": []}
    return transport


@pytest.fixture
def cache():
    return InMemoryTTLCache()


@pytest.fixture
def gateway(primary, secondary, cache):
    return QueryGateway(
        primary=primary,
        secondary=secondary,
        cache=cache,
        object_type_names={
            "conditions": "FastenConditions",
            "observations": "FastenObservations",
            "procedures": "FastenProcedures",
            "immunizations": "FastenImmunizations",
            "allergies": "AllergyIntolerances",
            "clinical-notes": "ClinicalNotes",
            "encounters": "FastenEncounters",
        },
        ontology_id="ontology-1234",
        category_object_types={"vital-signs": "FastenVitals"},
    )


@pytest.fixture
def profile_directory():
    directory = AsyncMock()
    directory.lookup.return_value = None
    directory.search.return_value = []
    return directory


@pytest.fixture
def resolver():
    return IdentityResolver()


@pytest.fixture
def client(test_settings, gateway, resolver, profile_directory, cache):
    """Test client with platform dependencies replaced."""
    app.dependency_overrides = {}
    verifier = TokenVerifier(AuthConfig(shared_secret=SecretStr(TEST_SECRET)))

    app.dependency_overrides[dependencies.get_settings] = lambda: test_settings
    app.dependency_overrides[dependencies.get_token_verifier] = lambda: verifier
    app.dependency_overrides[dependencies.get_query_gateway] = lambda: gateway
    app.dependency_overrides[dependencies.get_identity_resolver] = lambda: resolver
    app.dependency_overrides[dependencies.get_profile_directory] = lambda: profile_directory
    app.dependency_overrides[dependencies.get_cache] = lambda: cache

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Factory for Authorization headers carrying a signed test token."""
    return build_auth_headers
