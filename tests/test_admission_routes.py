"""Tests for the admission webhook endpoints."""

import json

import pytest
from fastapi.testclient import TestClient

from habitat.core.config import Settings
from habitat.services.admission import AdmissionService, get_admission_service
from habitat.webhook import app


@pytest.fixture
def client():
    """Create a test client with the dry run disabled."""
    service = AdmissionService(settings=Settings(template_dry_run=False, otel_enabled=False))
    app.dependency_overrides[get_admission_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def review(job: dict) -> str:
    return json.dumps(
        {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {"uid": "req-1", "operation": "CREATE", "object": job},
        }
    )


def test_validate_allows(client: TestClient, make_job) -> None:
    """Test that a valid Job is admitted."""
    response = client.post("/validate", content=review(make_job()))
    assert response.status_code == 200
    data = response.json()
    assert data["kind"] == "AdmissionReview"
    assert data["response"]["uid"] == "req-1"
    assert data["response"]["allowed"] is True


def test_validate_denies(client: TestClient, make_job) -> None:
    """Test that a rule violation is returned as a denial, not an HTTP error."""
    response = client.post("/validate", content=review(make_job(tasks=())))
    assert response.status_code == 200
    data = response.json()["response"]
    assert data["allowed"] is False
    assert data["status"]["message"] == "no task specified"
    assert data["status"]["code"] == 403


def test_validate_malformed_body(client: TestClient) -> None:
    """Test that garbage yields an invalid AdmissionReview rather than a 422."""
    response = client.post("/validate", content="{")
    assert response.status_code == 200
    data = response.json()["response"]
    assert data["uid"] == ""
    assert data["allowed"] is False
    assert data["status"]["reason"] == "Invalid"


def test_mutate_allows(client: TestClient, make_job) -> None:
    """Test that the mutating hook admits Jobs."""
    response = client.post("/mutate", content=review(make_job(tasks=())))
    assert response.status_code == 200
    assert response.json()["response"]["allowed"] is True


def test_health(client: TestClient) -> None:
    """Test that the webhook serves a liveness endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
