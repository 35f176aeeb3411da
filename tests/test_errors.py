import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from marketplace.app.core.config import settings
from marketplace.app.core.errors import format_validation_errors


@pytest.fixture
def failing_client(app):
    async def boom():
        raise RuntimeError("database exploded")

    async def duplicate():
        raise IntegrityError("INSERT INTO users ...", {}, Exception("Duplicate entry"))

    app.add_api_route("/api/test/boom", boom)
    app.add_api_route("/api/test/duplicate", duplicate)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["timestamp"]


def test_unknown_route(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Requested resource not found."}


def test_malformed_json_body(client):
    response = client.post(
        "/api/auth/login", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_unexpected_error_shows_details_outside_production(failing_client):
    response = failing_client.get("/api/test/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "database exploded"
    assert "RuntimeError" in body["stack"]


def test_unexpected_error_is_redacted_in_production(failing_client, monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    response = failing_client.get("/api/test/boom")
    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error."}


def test_integrity_error_is_conflict(failing_client):
    response = failing_client.get("/api/test/duplicate")
    assert response.status_code == 409
    assert response.json()["message"] == "Resource already exists."


def test_format_validation_errors_one_entry_per_field():
    errors = [
        {"loc": ("body", "password"), "msg": "String should have at least 8 characters"},
        {"loc": ("body", "password"), "msg": "Value error, Password must contain ..."},
        {"loc": ("query", "limit"), "msg": "Value error, too big"},
    ]
    assert format_validation_errors(errors) == [
        {"field": "password", "message": "String should have at least 8 characters"},
        {"field": "limit", "message": "too big"},
    ]
