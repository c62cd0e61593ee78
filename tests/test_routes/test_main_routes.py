"""
Smoke tests for the main blueprint routes.

These verify that the application starts up correctly and the API
index and health check endpoints respond.
"""


class TestIndex:
    """Tests for the API index."""

    def test_index_returns_200(self, client):
        response = client.get("/")
        assert response.status_code == 200

    def test_index_describes_api(self, client):
        """The index should name the API and list its areas."""
        body = client.get("/").get_json()
        assert body["status"] == "success"
        assert body["data"]["name"] == "ServiceNexus API"
        assert body["data"]["version"]
        assert "/api/ai-orchestrator" in body["data"]["endpoints"]


class TestHealthCheck:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client, db_session):
        """The health check should report a connected database."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy", "database": "connected"}


class TestErrors:
    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.get_json()["status"] == "fail"
