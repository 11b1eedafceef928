"""
Test suite for health check endpoints.

System role: Verification of liveness and database health routes
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from release_jobs.api import main as api_main
from release_jobs.api.routers import health


@pytest.fixture
def client() -> TestClient:
    return TestClient(api_main.create_app())


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Server Healthy"}


def test_health_check_db(client: TestClient, monkeypatch, tmp_path) -> None:
    """Test the database check runs a query through the shared engine."""
    # Arrange
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
    monkeypatch.setattr(health, "get_service_cache", lambda: SimpleNamespace(engine=engine))

    # Act
    response = client.get("/health/db")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "message": "Database connection OK"}


def test_health_check_db_unreachable(client: TestClient, monkeypatch, tmp_path) -> None:
    # Arrange
    missing = tmp_path / "missing" / "health.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{missing}")
    monkeypatch.setattr(health, "get_service_cache", lambda: SimpleNamespace(engine=engine))

    # Act
    response = client.get("/health/db")

    # Assert
    assert response.status_code == 503
    assert response.json()["detail"] == "Database unreachable"
