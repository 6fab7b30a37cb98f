"""Tests for the platform HTTP adapters.

Platform HTTP is stubbed with ``httpx.MockTransport``; each test inspects
the requests the adapter sent.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest
from pydantic import SecretStr

from clinical_gateway.adapters.platform.auth import ClientCredentialsTokenProvider, StaticTokenProvider
from clinical_gateway.adapters.platform.object_client import ObjectSetClient
from clinical_gateway.adapters.platform.rest_client import PlatformRestClient
from clinical_gateway.domain.filters import eq
from clinical_gateway.domain.guardrails import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError
from clinical_gateway.domain.ports import PlatformAPIError, TokenAcquisitionError

HOST = "https://platform.example.com"
ONTOLOGY = "ontology-1234"
TOKEN_URL = f"{HOST}/multipass/api/oauth2/token"


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class Recorder:
    """MockTransport handler replaying queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def token_response(token="tok-1", expires_in=3600):
    return httpx.Response(200, json={"access_token": token, "expires_in": expires_in})


def make_provider(recorder, clock=None, **kwargs):
    return ClientCredentialsTokenProvider(
        token_url=TOKEN_URL,
        client_id="client",
        client_secret=SecretStr("secret"),
        scopes=["api:read"],
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        clock=clock or FakeClock(),
        **kwargs
    )


class TestClientCredentialsTokenProvider:
    """Tests for token acquisition and caching."""

    @pytest.mark.asyncio
    async def test_posts_client_credentials_form(self):
        recorder = Recorder(token_response())
        provider = make_provider(recorder)

        token = await provider.get_token()

        assert token == "tok-1"
        form = parse_qs(recorder.requests[0].content.decode())
        assert form["grant_type"] == ["client_credentials"]
        assert form["client_id"] == ["client"]
        assert form["client_secret"] == ["secret"]
        assert form["scope"] == ["api:read"]

    @pytest.mark.asyncio
    async def test_token_cached_until_refresh_buffer(self):
        """Tokens are reused until five minutes before expiry."""
        clock = FakeClock()
        recorder = Recorder(token_response("tok-1", 3600), token_response("tok-2", 3600))
        provider = make_provider(recorder, clock)

        assert await provider.get_token() == "tok-1"
        clock.now = 3299
        assert await provider.get_token() == "tok-1"
        clock.now = 3300
        assert await provider.get_token() == "tok-2"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_failed_token_request(self):
        recorder = Recorder(httpx.Response(401, json={"error": "invalid_client"}))
        provider = make_provider(recorder)

        with pytest.raises(TokenAcquisitionError) as exc_info:
            await provider.get_token()

        assert exc_info.value.status_code == 401
        assert exc_info.value.upstream_message == "invalid_client"

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        provider = ClientCredentialsTokenProvider(TOKEN_URL, "", SecretStr(""))

        with pytest.raises(TokenAcquisitionError) as exc_info:
            await provider.get_token()

        assert exc_info.value.error_name == "MissingCredentials"

    @pytest.mark.asyncio
    async def test_stale_token_reused_while_circuit_open(self):
        """An expired cached token is reused while the token circuit is open."""
        clock = FakeClock()
        breaker = CircuitBreaker(
            CircuitBreakerConfig(min_calls_before_check=1, window_size=2, reset_timeout_seconds=60),
            name="token", clock=clock,
        )
        recorder = Recorder(token_response("tok-1", 400), httpx.Response(500, text="down"))
        provider = make_provider(recorder, clock, breaker=breaker)

        assert await provider.get_token() == "tok-1"
        clock.now = 200
        with pytest.raises(TokenAcquisitionError):
            await provider.get_token()

        assert breaker.is_open()
        assert await provider.get_token() == "tok-1"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_open_circuit_without_cached_token(self):
        clock = FakeClock()
        breaker = CircuitBreaker(CircuitBreakerConfig(min_calls_before_check=1), name="token", clock=clock)
        recorder = Recorder(httpx.Response(500, text="down"))
        provider = make_provider(recorder, clock, breaker=breaker)

        with pytest.raises(TokenAcquisitionError):
            await provider.get_token()
        with pytest.raises(TokenAcquisitionError) as exc_info:
            await provider.get_token()

        assert exc_info.value.error_name == "TokenCircuitOpen"
        assert exc_info.value.status_code == 503


class TestObjectSetClient:
    """Tests for the primary typed transport."""

    @pytest.mark.asyncio
    async def test_load_objects_request(self):
        """fetch_page posts a filtered object set to loadObjects."""
        recorder = Recorder(httpx.Response(200, json={"data": [], "nextPageToken": "n"}))
        client = ObjectSetClient(
            HOST, ONTOLOGY, StaticTokenProvider(SecretStr("static-token")),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )

        page = await client.fetch_page("FastenConditions", eq("auth0id", "auth0|u1"), 25, "tok")

        request = recorder.requests[0]
        assert str(request.url) == f"{HOST}/api/v2/ontologies/{ONTOLOGY}/objectSets/loadObjects"
        assert request.headers["Authorization"] == "Bearer static-token"
        assert json.loads(request.content) == {
            "objectSet": {
                "type": "filter",
                "objectSet": {"type": "base", "objectType": "FastenConditions"},
                "where": {"type": "eq", "field": "auth0id", "value": "auth0|u1"},
            },
            "pageSize": 25,
            "pageToken": "tok",
        }
        assert page == {"data": [], "nextPageToken": "n"}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        recorder = Recorder(httpx.Response(429, json={"errorName": "TooManyRequests"}))
        client = ObjectSetClient(
            HOST, ONTOLOGY, StaticTokenProvider(SecretStr("t")),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )

        with pytest.raises(PlatformAPIError) as exc_info:
            await client.fetch_page("T", eq("a", "b"), 10)

        assert exc_info.value.is_throttled
        assert exc_info.value.error_name == "TooManyRequests"

    @pytest.mark.asyncio
    async def test_network_error_is_status_zero(self):
        recorder = Recorder(httpx.ConnectError("refused"))
        client = ObjectSetClient(
            HOST, ONTOLOGY, StaticTokenProvider(SecretStr("t")),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)),
        )

        with pytest.raises(PlatformAPIError) as exc_info:
            await client.fetch_page("T", eq("a", "b"), 10)

        assert exc_info.value.status_code == 0

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = ObjectSetClient("", "", StaticTokenProvider(SecretStr("t")))

        with pytest.raises(PlatformAPIError) as exc_info:
            await client.fetch_page("T", eq("a", "b"), 10)

        assert exc_info.value.error_name == "NotConfigured"


class TestPlatformRestClient:
    """Tests for the secondary REST transport."""

    def make_client(self, recorder, breaker=None):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        provider = ClientCredentialsTokenProvider(
            TOKEN_URL, "client", SecretStr("secret"), http_client=http_client, clock=FakeClock()
        )
        return PlatformRestClient(HOST, ONTOLOGY, provider, http_client=http_client, breaker=breaker)

    @pytest.mark.asyncio
    async def test_search_request(self):
        recorder = Recorder(token_response("tok-1"), httpx.Response(200, json={"data": [{"a": 1}]}))
        client = self.make_client(recorder)

        payload = await client.search_objects("A", eq("auth0id", "x"), 10, "p2", select=["auth0id"])

        request = recorder.requests[1]
        assert str(request.url) == f"{HOST}/api/v2/ontologies/{ONTOLOGY}/objects/A/search"
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert json.loads(request.content) == {
            "where": {"type": "eq", "field": "auth0id", "value": "x"},
            "pageSize": 10,
            "pageToken": "p2",
            "select": ["auth0id"],
        }
        assert payload == {"data": [{"a": 1}]}

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token(self):
        """A 401 drops the cached token so the next call fetches a new one."""
        recorder = Recorder(
            token_response("tok-1"),
            httpx.Response(401, json={"errorName": "Unauthorized"}),
            token_response("tok-2"),
            httpx.Response(200, json={"data": []}),
        )
        client = self.make_client(recorder)

        with pytest.raises(PlatformAPIError):
            await client.search_objects("A", eq("a", "b"), 10)
        await client.search_objects("A", eq("a", "b"), 10)

        assert recorder.requests[3].headers["Authorization"] == "Bearer tok-2"

    @pytest.mark.asyncio
    async def test_client_errors_do_not_trip_breaker(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(min_calls_before_check=1))
        recorder = Recorder(token_response(), httpx.Response(400, json={"message": "bad field"}))
        client = self.make_client(recorder, breaker)

        with pytest.raises(PlatformAPIError) as exc_info:
            await client.search_objects("A", eq("a", "b"), 10)

        assert exc_info.value.upstream_message == "bad field"
        assert not breaker.is_open()

    @pytest.mark.asyncio
    async def test_server_errors_open_breaker(self):
        """Once the breaker opens, calls fail fast without reaching the platform."""
        breaker = CircuitBreaker(CircuitBreakerConfig(min_calls_before_check=1))
        recorder = Recorder(token_response(), httpx.Response(502, text="bad gateway"))
        client = self.make_client(recorder, breaker)

        with pytest.raises(PlatformAPIError):
            await client.search_objects("A", eq("a", "b"), 10)
        with pytest.raises(CircuitBreakerOpenError):
            await client.search_objects("A", eq("a", "b"), 10)

        assert len(recorder.requests) == 2
