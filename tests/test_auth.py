from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from marketplace.app.db.base import AsyncSessionLocal, utcnow
from marketplace.app.models.login_attempt import LoginAttempt
from marketplace.app.models.user import User
from marketplace.app.models.user_session import UserSession
from marketplace.app.security import jwt

from tests.conftest import (
    PASSWORD,
    auth_headers,
    login_user,
    register_user,
    run,
    set_user_flags,
)


def _count(model, *criteria):
    async def _query():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()

    return run(_query())


# ─────────────────────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────────────────────
def test_register_returns_public_fields_only(client):
    response = client.post("/api/auth/register", json={
        "email": "new@example.com",
        "username": "newbie",
        "password": PASSWORD,
        "phone": "010-1234-5678",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert set(body["data"]) == {"id", "email", "username"}
    assert body["data"]["email"] == "new@example.com"


def test_register_duplicate_email(client):
    register_user(client)
    response = client.post("/api/auth/register", json={
        "email": "seller@example.com", "username": "someone_else", "password": PASSWORD,
    })
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Email is already in use."}


def test_register_duplicate_username(client):
    register_user(client)
    response = client.post("/api/auth/register", json={
        "email": "other@example.com", "username": "seller", "password": PASSWORD,
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Username is already in use."


def test_register_weak_password_reports_field(client):
    response = client.post("/api/auth/register", json={
        "email": "weak@example.com", "username": "weak", "password": "alllowercase1",
    })
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid input."
    assert [error["field"] for error in body["errors"]] == ["password"]


def test_register_collects_every_invalid_field(client):
    response = client.post("/api/auth/register", json={
        "email": "not-an-email", "username": "a b", "password": "short",
    })
    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert fields == {"email", "username", "password"}


# ─────────────────────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────────────────────
def test_login_returns_token_and_profile(client):
    register_user(client)
    response = client.post("/api/auth/login", json={"email": "seller@example.com", "password": PASSWORD})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["user"]["username"] == "seller"
    assert data["user"]["last_login_at"] is not None
    assert "password_hash" not in data["user"]

    assert _count(UserSession, UserSession.token == data["token"]) == 1


def test_login_failures_share_one_message(client):
    register_user(client)
    wrong_password = client.post(
        "/api/auth/login", json={"email": "seller@example.com", "password": "Wrong0ne!"}
    )
    unknown_email = client.post(
        "/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD}
    )
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["message"] == unknown_email.json()["message"]


def test_login_attempts_are_recorded(client):
    register_user(client)
    client.post("/api/auth/login", json={"email": "seller@example.com", "password": "Wrong0ne!"})
    client.post("/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    login_user(client)

    assert _count(LoginAttempt, LoginAttempt.fail_reason == "invalid_password") == 1
    assert _count(LoginAttempt, LoginAttempt.fail_reason == "user_not_found") == 1
    assert _count(LoginAttempt, LoginAttempt.success == True) == 1  # noqa: E712


def test_login_throttled_after_five_failures(client):
    register_user(client)
    for _ in range(5):
        response = client.post(
            "/api/auth/login", json={"email": "seller@example.com", "password": "Wrong0ne!"}
        )
        assert response.status_code == 401

    # Correct password is refused too while the window is open
    response = client.post("/api/auth/login", json={"email": "seller@example.com", "password": PASSWORD})
    assert response.status_code == 429
    assert "Too many failed login attempts" in response.json()["message"]


def test_login_throttled_by_ip_across_emails(client):
    register_user(client)
    for i in range(5):
        response = client.post(
            "/api/auth/login", json={"email": f"ghost{i}@example.com", "password": PASSWORD}
        )
        assert response.status_code == 401

    # Same client address, untouched account
    response = client.post("/api/auth/login", json={"email": "seller@example.com", "password": PASSWORD})
    assert response.status_code == 429


def test_login_survives_unavailable_attempt_table(client, monkeypatch):
    register_user(client)

    def unavailable():
        raise OperationalError("SELECT ... FROM login_attempts", {}, Exception("database is locked"))

    monkeypatch.setattr("marketplace.app.security.login_attempts.AsyncSessionLocal", unavailable)

    response = client.post("/api/auth/login", json={"email": "seller@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["data"]["token"]

    response = client.post(
        "/api/auth/login", json={"email": "seller@example.com", "password": "Wrong0ne!"}
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password."


def test_login_prunes_expired_attempts(client):
    async def _seed():
        async with AsyncSessionLocal() as db:
            db.add(LoginAttempt(
                email="old@example.com",
                ip_address="10.0.0.1",
                success=False,
                fail_reason="invalid_password",
                attempted_at=utcnow() - timedelta(days=31),
            ))
            await db.commit()

    run(_seed())
    assert _count(LoginAttempt, LoginAttempt.email == "old@example.com") == 1

    register_user(client)
    login_user(client)

    assert _count(LoginAttempt, LoginAttempt.email == "old@example.com") == 0
    assert _count(LoginAttempt, LoginAttempt.email == "seller@example.com") == 1


def test_each_login_gets_a_distinct_session(client):
    register_user(client)
    first = login_user(client)
    second = login_user(client)
    assert first != second

    client.post("/api/auth/logout", headers=auth_headers(first))
    assert client.get("/api/auth/me", headers=auth_headers(first)).status_code == 401
    assert client.get("/api/auth/me", headers=auth_headers(second)).status_code == 200


# ─────────────────────────────────────────────────────────────
# Token resolution
# ─────────────────────────────────────────────────────────────
def test_me_requires_token(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401


def test_malformed_token_is_forbidden(client):
    response = client.get("/api/auth/me", headers=auth_headers("not.a.jwt"))
    assert response.status_code == 403
    assert response.json()["message"] == "Invalid token."


def test_expired_token_is_unauthorized(client):
    register_user(client)
    token = jwt.create_access_token({"sub": "whoever"}, expires_delta=timedelta(minutes=-1))
    response = client.get("/api/auth/me", headers=auth_headers(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token has expired."


def test_signed_token_without_session_is_rejected(client):
    user = register_user(client)
    token = jwt.create_access_token({"sub": user["id"], "email": user["email"]})
    response = client.get("/api/auth/me", headers=auth_headers(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Session has expired or is invalid."


def test_deleted_user_is_rejected(client, seller_token):
    set_user_flags("seller@example.com", is_deleted=True)
    response = client.get("/api/auth/me", headers=auth_headers(seller_token))
    assert response.status_code == 401
    assert response.json()["message"] == "User not found."


def test_unverified_user_is_forbidden(client, seller_token):
    set_user_flags("seller@example.com", is_verified=False)
    response = client.get("/api/auth/me", headers=auth_headers(seller_token))
    assert response.status_code == 403


# ─────────────────────────────────────────────────────────────
# Logout / profile / password
# ─────────────────────────────────────────────────────────────
def test_logout_revokes_token(client, seller_token):
    response = client.post("/api/auth/logout", headers=auth_headers(seller_token))
    assert response.status_code == 200

    response = client.get("/api/auth/me", headers=auth_headers(seller_token))
    assert response.status_code == 401
    assert response.json()["message"] == "Session has expired or is invalid."


def test_update_profile(client, seller_token):
    response = client.put(
        "/api/auth/me",
        json={"bio": "Selling my old gear", "phone": "01098765432"},
        headers=auth_headers(seller_token),
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["bio"] == "Selling my old gear"
    assert data["phone"] == "01098765432"
    assert data["username"] == "seller"


def test_update_profile_duplicate_username(client, seller_token, buyer_token):
    response = client.put(
        "/api/auth/me", json={"username": "buyer"}, headers=auth_headers(seller_token)
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Username is already in use."


def test_change_password_wrong_current(client, seller_token):
    response = client.put("/api/auth/password", headers=auth_headers(seller_token), json={
        "current_password": "Wrong0ne!",
        "new_password": "N3w-Passw0rd!",
        "confirm_password": "N3w-Passw0rd!",
    })
    assert response.status_code == 401


def test_change_password_mismatch(client, seller_token):
    response = client.put("/api/auth/password", headers=auth_headers(seller_token), json={
        "current_password": PASSWORD,
        "new_password": "N3wPassw0rd!",
        "confirm_password": "Different0!",
    })
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "confirm_password"


def test_change_password_revokes_every_session(client, seller_token):
    other_device = login_user(client)
    response = client.put("/api/auth/password", headers=auth_headers(seller_token), json={
        "current_password": PASSWORD,
        "new_password": "N3wPassw0rd!",
        "confirm_password": "N3wPassw0rd!",
    })
    assert response.status_code == 200

    for token in (seller_token, other_device):
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    old = client.post("/api/auth/login", json={"email": "seller@example.com", "password": PASSWORD})
    assert old.status_code == 401
    assert login_user(client, password="N3wPassw0rd!")


def test_register_login_me_scenario(client):
    response = client.post("/api/auth/register", json={
        "email": "alice@example.com", "username": "alice1", "password": "Alice123!",
    })
    assert response.status_code == 201
    alice_id = response.json()["data"]["id"]

    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "Alice124!"})
    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password."

    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "Alice123!"})
    assert response.status_code == 200
    assert set(response.json()["data"]) == {"user", "token"}
    token = response.json()["data"]["token"]

    me = client.get("/api/auth/me", headers=auth_headers(token)).json()["data"]
    assert me["id"] == alice_id
    assert "password_hash" not in me
    assert "password" not in me


def test_duplicate_registration_leaves_one_row(client):
    body = {"email": "twice@example.com", "username": "twice", "password": PASSWORD}
    statuses = [client.post("/api/auth/register", json=body).status_code for _ in range(2)]
    assert statuses == [201, 400]
    assert _count(User, User.email == "twice@example.com") == 1


def test_invalid_registration_writes_nothing(client):
    client.post("/api/auth/register", json={"email": "x@example.com", "username": "x!", "password": "weak"})
    assert _count(User) == 0
