# marketplace/app/security/login_attempts.py
"""
Database-backed login throttling.

- Failed attempts for an email OR an IP are counted over a rolling window
  (LOGIN_ATTEMPT_WINDOW_MINUTES, default 15)
- At MAX_LOGIN_ATTEMPTS failures the login is refused with 429 before the
  password is looked at
- Every outcome is appended to login_attempts; rows older than the retention
  window are pruned on the way out

Both helpers run on their own session so a failure here never poisons the
request's session. Persisting the audit row is best effort: errors are
logged and the login response goes out regardless.
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from marketplace.app.core.config import settings
from marketplace.app.db.base import AsyncSessionLocal, utcnow
from marketplace.app.models.login_attempt import LoginAttempt

logger = logging.getLogger(__name__)

FAIL_USER_NOT_FOUND = "user_not_found"
FAIL_INVALID_PASSWORD = "invalid_password"


async def count_recent_failures(email: str, ip_address: Optional[str]) -> int:
    window_start = utcnow() - timedelta(minutes=settings.LOGIN_ATTEMPT_WINDOW_MINUTES)
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(func.count(LoginAttempt.id)).where(
                or_(LoginAttempt.email == email, LoginAttempt.ip_address == ip_address),
                LoginAttempt.success == False,  # noqa: E712
                LoginAttempt.attempted_at > window_start,
            )
        )
        return result.scalar_one()


async def check_login_attempts(email: str, ip_address: Optional[str]) -> None:
    """Raise 429 when the email or IP has too many recent failures."""
    try:
        failures = await count_recent_failures(email, ip_address)
    except SQLAlchemyError:
        # Fail open: an unavailable audit table must not lock everybody out
        logger.exception("Could not read login attempts for %s", email)
        return

    if failures >= settings.MAX_LOGIN_ATTEMPTS:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=(
                "Too many failed login attempts. "
                f"Try again in {settings.LOGIN_ATTEMPT_WINDOW_MINUTES} minutes."
            ),
        )


async def log_login_attempt(
    email: str,
    ip_address: Optional[str],
    success: bool,
    fail_reason: Optional[str] = None,
) -> None:
    try:
        async with AsyncSessionLocal() as db:
            db.add(LoginAttempt(
                email=email,
                ip_address=ip_address,
                success=success,
                fail_reason=fail_reason,
            ))
            await db.execute(
                delete(LoginAttempt).where(LoginAttempt.attempted_at < retention_cutoff())
            )
            await db.commit()
    except SQLAlchemyError:
        logger.exception("Could not record login attempt for %s", email)


def retention_cutoff():
    return utcnow() - timedelta(days=settings.LOGIN_ATTEMPT_RETENTION_DAYS)
