import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from marketplace.app.db.base import AsyncSessionLocal, utcnow
from marketplace.app.models.login_attempt import LoginAttempt
from marketplace.app.models.user_session import UserSession
from marketplace.app.services.cleanup import CLEANUP_JOB_ID, CleanupScheduler, run_cleanup

from tests.conftest import auth_headers, register_user, run


def _seed_stale_rows(user_id):
    async def _seed():
        async with AsyncSessionLocal() as db:
            db.add(UserSession(user_id=user_id, token="expired-token", expires_at=utcnow() - timedelta(hours=1)))
            db.add(UserSession(user_id=user_id, token="live-token", expires_at=utcnow() + timedelta(hours=1)))
            db.add(LoginAttempt(email="old@example.com", success=False, attempted_at=utcnow() - timedelta(days=31)))
            db.add(LoginAttempt(email="recent@example.com", success=False))
            await db.commit()

    run(_seed())


def _tokens_left():
    async def _query():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(UserSession.token))
            return set(result.scalars().all())

    return run(_query())


def _attempts_left():
    async def _query():
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(func.count(LoginAttempt.id)))
            return result.scalar_one()

    return run(_query())


def test_run_cleanup_removes_only_stale_rows(client):
    user = register_user(client)
    _seed_stale_rows(user["id"])

    result = run(run_cleanup())

    assert result.sessions_removed == 1
    assert result.login_attempts_removed == 1
    assert _tokens_left() == {"live-token"}
    assert _attempts_left() == 1


def test_run_cleanup_is_idempotent(client):
    user = register_user(client)
    _seed_stale_rows(user["id"])
    run(run_cleanup())

    result = run(run_cleanup())
    assert (result.sessions_removed, result.login_attempts_removed) == (0, 0)


def test_scheduler_start_and_stop():
    async def _lifecycle():
        scheduler = CleanupScheduler(interval_minutes=5)
        scheduler.start()
        try:
            assert scheduler.running
            job = scheduler._scheduler.get_job(CLEANUP_JOB_ID)
            assert job is not None
            assert job.trigger.interval == timedelta(minutes=5)
        finally:
            scheduler.stop()
        assert not scheduler.running
        # Stopping twice is harmless
        scheduler.stop()

    asyncio.run(_lifecycle())


def test_admin_cleanup_endpoint(client, admin_token):
    user = register_user(client, email="someone@example.com", username="someone")
    _seed_stale_rows(user["id"])

    response = client.post("/api/admin/maintenance/cleanup", headers=auth_headers(admin_token))
    assert response.status_code == 200
    assert response.json()["data"] == {"sessions_removed": 1, "login_attempts_removed": 1}


def test_cleanup_endpoint_requires_admin(client, seller_token):
    response = client.post("/api/admin/maintenance/cleanup", headers=auth_headers(seller_token))
    assert response.status_code == 403
    assert response.json()["message"] == "Administrator privileges are required."
