"""Tests for the DORA metrics HTTP API."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from dora_metrics.aggregator import DoraAggregator
from dora_metrics.api.app import create_app
from dora_metrics.api.routers.dora import get_aggregator
from dora_metrics.errors import StorageError


@pytest.fixture
def client(acme_week_store, score_cache):
    app = create_app()
    aggregator = DoraAggregator(acme_week_store, score_cache, today=lambda: date(2025, 1, 1))
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    return TestClient(app)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_get_dora_metrics(client):
    response = client.get(
        "/api/v1/dora",
        params={
            "owner": "acme",
            "start_date": "2024-01-01",
            "end_date": "2024-01-07",
            "granularity": "week",
            "repo": "svc",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == 200
    assert body["message"] == "Successfully fetched DORA metrics"

    [users] = body["data"]["users"]
    assert users["key"] == "2024-01-01"
    assert users["value"] == [
        {
            "deployment_frequency": 1.0,
            "lead_time_for_changes": 2.0,
            "change_failure_rate": 100.0,
            "time_to_restore_service": 4.0,
            "user": "bob",
        }
    ]
    [repos] = body["data"]["repos"]
    assert [r["repo"] for r in repos["value"]] == ["svc"]
    [orgs] = body["data"]["orgs"]
    assert orgs["value"][0]["org"] == "acme"
    assert orgs["value"][0]["deployment_frequency"] == 1.0


def test_missing_parameters_return_400(client):
    response = client.get("/api/v1/dora", params={"owner": "acme", "granularity": "week"})

    assert response.status_code == 400
    assert "startDate" in response.json()["detail"]
    assert "endDate" in response.json()["detail"]


def test_invalid_granularity_returns_400(client):
    response = client.get(
        "/api/v1/dora",
        params={"owner": "acme", "start_date": "2024-01-01", "end_date": "2024-01-07", "granularity": "year"},
    )

    assert response.status_code == 400
    assert "granularity" in response.json()["detail"]


def test_storage_failure_returns_500(make_store, score_cache):
    class BrokenStore(make_store):
        async def list_repositories(self, owner):
            raise StorageError("Failed to list repositories for acme")

    app = create_app()
    app.dependency_overrides[get_aggregator] = lambda: DoraAggregator(BrokenStore(), score_cache)

    response = TestClient(app).get(
        "/api/v1/dora",
        params={"owner": "acme", "start_date": "2024-01-01", "end_date": "2024-01-07", "granularity": "week"},
    )

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to calculate DORA metrics"}
