"""Pytest fixtures for the marketplace API.

The environment is configured before the application is imported: a
throw-away file-backed SQLite database (recreated for every test), a cheap
bcrypt cost factor, and rate limiting and the cleanup scheduler switched
off. Tests that need a limiter turn it back on with monkeypatch.
"""
import asyncio
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SESSION_CLEANUP_ENABLED"] = "false"
os.environ["CSRF_PROTECTION"] = "false"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import update  # noqa: E402

from marketplace.app.db import init_models  # noqa: E402
from marketplace.app.db.base import AsyncSessionLocal  # noqa: E402
from marketplace.app.main import create_app  # noqa: E402
from marketplace.app.models.user import User  # noqa: E402

PASSWORD = "Passw0rd!"


def run(coro):
    """Run a coroutine to completion from synchronous test code."""
    return asyncio.run(coro)


def set_user_flags(email, **values):
    async def _update():
        async with AsyncSessionLocal() as db:
            await db.execute(update(User).where(User.email == email).values(**values))
            await db.commit()

    run(_update())


def register_user(client, email="seller@example.com", username="seller", password=PASSWORD, **extra):
    response = client.post("/api/auth/register", json={
        "email": email,
        "username": username,
        "password": password,
        **extra,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


def login_user(client, email="seller@example.com", password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]["token"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def product_payload(**overrides):
    payload = {
        "title": "Used road bike",
        "description": "Aluminium frame, recently serviced.",
        "price": 150000,
        "category": "sports",
        "stock": 1,
        "location": "Seoul Mapo",
        "is_negotiable": True,
        "condition_status": "good",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def reset_db():
    run(init_models(drop=True))


@pytest.fixture
def app(reset_db):
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seller_token(client):
    register_user(client)
    return login_user(client)


@pytest.fixture
def buyer_token(client):
    register_user(client, email="buyer@example.com", username="buyer")
    return login_user(client, email="buyer@example.com")


@pytest.fixture
def admin_token(client):
    register_user(client, email="admin@example.com", username="admin")
    set_user_flags("admin@example.com", is_admin=True)
    return login_user(client, email="admin@example.com")


@pytest.fixture
def product_id(client, seller_token):
    response = client.post(
        "/api/products", json=product_payload(), headers=auth_headers(seller_token)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]
