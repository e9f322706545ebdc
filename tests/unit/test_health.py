"""Unit tests for health endpoints."""

import pytest
from fastapi.testclient import TestClient

from upsell_service.api.v1 import health


def test_health_check(client: TestClient) -> None:
    """Test basic health check returns healthy status."""
    response = client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert "environment" in data
    assert "timestamp" in data
    assert set(data["dependencies"]) == {"postgres", "shopify", "text_generation"}


def test_liveness_check(client: TestClient) -> None:
    """Test liveness check returns alive status."""
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.parametrize("database_up", [True, False])
def test_readiness_check(client: TestClient, monkeypatch: pytest.MonkeyPatch, database_up: bool) -> None:
    """Readiness reflects the database check."""
    async def fake_check() -> bool:
        return database_up

    monkeypatch.setattr(health, "check_database", fake_check)

    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200

    data = response.json()
    assert data["ready"] is database_up
    assert data["checks"] == {"postgres": database_up}
