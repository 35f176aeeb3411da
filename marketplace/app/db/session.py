# marketplace/app/db/session.py
"""
Async database session management for SQLAlchemy.

Production considerations:
- Uses aiomysql for MySQL/MariaDB, asyncpg for PostgreSQL
- Uses aiosqlite for SQLite (local development and tests)
- Bounded connection pool with a fixed connect timeout

Security considerations:
- DATABASE_ECHO disabled by default (prevents SQL query exposure)
- Every statement is a SQLAlchemy expression with bound parameters
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from marketplace.app.core.config import settings


def _create_async_engine() -> AsyncEngine:
    """
    Create and configure the async SQLAlchemy engine.

    SQLite (local development, tests):
    - NullPool, one connection per session
    - check_same_thread=False for async compatibility

    MySQL / PostgreSQL:
    - AsyncAdaptedQueuePool capped at DB_POOL_SIZE with no overflow
    - pool_pre_ping=True: validate connections before checkout
    - pool_timeout: how long a request waits for a free connection
    """
    if settings.is_sqlite:
        return create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )

    connect_args = {}
    if settings.is_mysql:
        # utf8mb4 for emoji and multilingual text
        connect_args = {
            "connect_timeout": settings.DB_CONNECT_TIMEOUT,
            "charset": "utf8mb4",
        }
    else:
        connect_args = {"timeout": settings.DB_CONNECT_TIMEOUT}

    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=settings.DB_CONNECT_TIMEOUT,
        pool_pre_ping=True,
        pool_recycle=300,
        connect_args=connect_args,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Global async engine instance
# Created once at module load, reused across all requests
# ─────────────────────────────────────────────────────────────────────────────
engine: AsyncEngine = _create_async_engine()


AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency generator for database sessions.

    Usage in FastAPI endpoints:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is closed (and its connection returned to the pool)
    after the request completes, even if the endpoint raises.

    Note: This does NOT auto-commit. Endpoints commit explicitly or
    wrap their writes in ``transaction(db)``.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit everything done inside the block, or roll all of it back.

        async with transaction(db):
            db.add(product)
            db.add(image)
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
