"""Tests for the patient profile endpoints."""

from clinical_gateway.domain.ports import PlatformAPIError


class TestPatientProfile:
    """Tests for GET /api/v1/platform/patient/profile."""

    def test_profile_found(self, client, auth_headers, profile_directory):
        profile_directory.lookup.return_value = {"$primaryKey": "pk-1", "auth0id": "auth0|abc123", "name": "Jane"}

        response = client.get("/api/v1/platform/patient/profile", headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["rid"] == "pk-1"
        assert body["data"]["properties"]["name"] == "Jane"
        assert body["correlationId"] == response.headers["X-Correlation-Id"]
        profile_directory.lookup.assert_awaited_once_with("auth0|abc123")

    def test_profile_not_found(self, client, auth_headers):
        response = client.get("/api/v1/platform/patient/profile", headers=auth_headers())

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PROFILE_NOT_FOUND"

    def test_requires_token(self, client):
        response = client.get("/api/v1/platform/patient/profile")
        assert response.status_code == 401


class TestProfileSearch:
    """Tests for POST /api/v1/patient/profile/search."""

    def test_value_takes_priority(self, client, auth_headers, profile_directory):
        """The body value is searched instead of the caller's own identity."""
        profile_directory.search.return_value = [{"rid": "ri.1", "patientId": "p-42"}]

        response = client.post(
            "/api/v1/patient/profile/search",
            json={"value": "p-42", "fieldCandidates": ["patientId"], "limit": 5},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["objects"] == [{"rid": "ri.1", "properties": {"rid": "ri.1", "patientId": "p-42"}}]
        profile_directory.search.assert_awaited_once_with("p-42", fields=["patientId"], limit=5)

    def test_defaults_to_caller_identity(self, client, auth_headers, profile_directory):
        response = client.post("/api/v1/patient/profile/search", json={}, headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["data"]["objects"] == []
        profile_directory.search.assert_awaited_once_with("auth0|abc123", fields=None, limit=10)

    def test_limit_validated(self, client, auth_headers):
        response = client.post(
            "/api/v1/patient/profile/search", json={"limit": 0}, headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_platform_failure_is_unavailable(self, client, auth_headers, profile_directory):
        profile_directory.search.side_effect = PlatformAPIError(502, "down")

        response = client.post("/api/v1/patient/profile/search", json={"value": "x"}, headers=auth_headers())

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "UPSTREAM_UNAVAILABLE"

    def test_platform_throttling(self, client, auth_headers, profile_directory):
        profile_directory.lookup.side_effect = PlatformAPIError(429, "")

        response = client.get("/api/v1/platform/patient/profile", headers=auth_headers())

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "UPSTREAM_THROTTLED"

    def test_profile_rejection_is_unavailable(self, client, auth_headers, profile_directory):
        """The caller sent no filter, so a rejected profile query is not their error."""
        profile_directory.lookup.side_effect = PlatformAPIError(400, "", upstream_message="Unknown property auth0id")

        response = client.get("/api/v1/platform/patient/profile", headers=auth_headers())

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "UPSTREAM_UNAVAILABLE"
        assert "auth0id" not in error["message"]
