# marketplace/app/services/cleanup.py
"""
Periodic maintenance of authentication tables.

- sessions past their expiry are deleted
- login attempts older than LOGIN_ATTEMPT_RETENTION_DAYS are deleted

``CleanupScheduler`` owns an APScheduler instance with an explicit
start/stop lifecycle; the application lifespan drives it. The sweep itself
is a plain coroutine so it can also be run on demand (admin endpoint, tests).
"""
import logging
from dataclasses import dataclass
from datetime import timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.app.core.config import settings
from marketplace.app.db.base import AsyncSessionLocal, transaction, utcnow
from marketplace.app.models.login_attempt import LoginAttempt
from marketplace.app.models.user_session import UserSession
from marketplace.app.security.login_attempts import retention_cutoff

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "cleanup_expired_sessions"


@dataclass
class CleanupResult:
    sessions_removed: int
    login_attempts_removed: int


async def cleanup_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(UserSession).where(UserSession.expires_at < utcnow()))
    return result.rowcount or 0


async def prune_login_attempts(db: AsyncSession) -> int:
    result = await db.execute(
        delete(LoginAttempt).where(LoginAttempt.attempted_at < retention_cutoff())
    )
    return result.rowcount or 0


async def run_cleanup(db: Optional[AsyncSession] = None) -> CleanupResult:
    """Run both sweeps in one transaction."""
    if db is None:
        async with AsyncSessionLocal() as session:
            return await run_cleanup(session)

    async with transaction(db):
        sessions_removed = await cleanup_expired_sessions(db)
        attempts_removed = await prune_login_attempts(db)

    logger.info(
        "Cleanup removed %d expired sessions and %d old login attempts",
        sessions_removed, attempts_removed,
    )
    return CleanupResult(sessions_removed, attempts_removed)


def _log_job_event(job_event) -> None:
    """Write a concise log line for every job completion/error."""
    if getattr(job_event, "exception", None):
        logger.error("Scheduler job %s failed: %s", job_event.job_id, job_event.exception)
    else:
        logger.debug("Scheduler job %s executed successfully.", job_event.job_id)


class CleanupScheduler:
    """Runs ``run_cleanup`` every ``interval_minutes`` while started."""

    def __init__(self, interval_minutes: Optional[int] = None) -> None:
        self.interval_minutes = interval_minutes or settings.SESSION_CLEANUP_INTERVAL_MINUTES
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Must be called from inside the running event loop."""
        if self.running:
            return
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_listener(_log_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        scheduler.add_job(
            run_cleanup,
            trigger="interval",
            minutes=self.interval_minutes,
            id=CLEANUP_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Session cleanup scheduled every %d minutes", self.interval_minutes)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
