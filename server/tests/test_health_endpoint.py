"""Test health endpoints"""

from fastapi.testclient import TestClient

from poster_gateway.main import create_app
from tests.config import test_config


class TestHealthEndpoint:
    """Test health endpoint is accessible on every host"""

    def test_health_endpoint(self, poster_client):
        response = poster_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "poster-gateway"

    def test_detailed_health_lists_tenants(self, studio_client):
        response = studio_client.get("/health/detailed")

        assert response.status_code == 200
        assert response.json()["checks"]["tenants"] == ["studio", "poster"]

    def test_detailed_health_reports_missing_configuration(self):
        settings = dict(test_config, supabase_url=None)
        client = TestClient(create_app(settings), base_url="https://poster.example.com")

        response = client.get("/health/detailed")
        assert response.status_code == 503
        assert response.json()["detail"]["checks"]["identity_provider"] == "unconfigured"
