"""Tests for the platform profile directory."""

from unittest.mock import AsyncMock

import pytest

from clinical_gateway.adapters.platform.profiles import PlatformProfileDirectory, profile_properties, profile_rid
from clinical_gateway.domain.ports import PlatformAPIError


@pytest.fixture
def rest_client():
    return AsyncMock()


class TestPlatformProfileDirectory:
    """Tests for PlatformProfileDirectory."""

    @pytest.mark.asyncio
    async def test_tries_fields_in_order(self, rest_client):
        """Fields are tried in order until one returns records."""
        rest_client.search_objects.side_effect = [
            {"data": []},
            {"objects": [{"properties": {"patientId": "p1", "$primaryKey": "pk1"}}]},
        ]
        directory = PlatformProfileDirectory(rest_client, object_type="A")

        profile = await directory.lookup("p1")

        assert profile == {"patientId": "p1", "$primaryKey": "pk1"}
        first_filter = rest_client.search_objects.await_args_list[0].args[1]
        second_filter = rest_client.search_objects.await_args_list[1].args[1]
        assert first_filter == {"type": "eq", "field": "auth0id", "value": "p1"}
        assert second_filter == {"type": "eq", "field": "patientId", "value": "p1"}

    @pytest.mark.asyncio
    async def test_missing_field_moves_on(self, rest_client):
        """400 and 404 mean the field is not searchable on this type."""
        rest_client.search_objects.side_effect = [
            PlatformAPIError(400, "bad"),
            PlatformAPIError(404, "missing"),
            {"data": [{"user_id": "auth0|x"}]},
        ]
        directory = PlatformProfileDirectory(rest_client)

        assert await directory.lookup("auth0|x") == {"user_id": "auth0|x"}

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, rest_client):
        rest_client.search_objects.side_effect = PlatformAPIError(503, "down")
        directory = PlatformProfileDirectory(rest_client)

        with pytest.raises(PlatformAPIError):
            await directory.lookup("x")

    @pytest.mark.asyncio
    async def test_no_match(self, rest_client):
        rest_client.search_objects.return_value = {"data": []}
        directory = PlatformProfileDirectory(rest_client)

        assert await directory.lookup("x") is None
        assert rest_client.search_objects.await_count == 5

    @pytest.mark.asyncio
    async def test_search_custom_fields_and_limit(self, rest_client):
        rest_client.search_objects.return_value = {"data": [{"email": "a@b.c"}]}
        directory = PlatformProfileDirectory(rest_client)

        profiles = await directory.search("a@b.c", fields=["email", "email"], limit=3)

        assert profiles == [{"email": "a@b.c"}]
        rest_client.search_objects.assert_awaited_once()
        assert rest_client.search_objects.await_args.kwargs["page_size"] == 3


class TestProfileHelpers:
    def test_profile_properties(self):
        assert profile_properties({"properties": {"a": 1}, "b": 2}) == {"a": 1}
        assert profile_properties({"b": 2}) == {"b": 2}

    def test_profile_rid(self):
        assert profile_rid({"$rid": "ri.1", "id": "x"}) == "ri.1"
        assert profile_rid({}) is None
