# marketplace/app/db/base.py
"""
SQLAlchemy declarative base and re-exports of the session components.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


# ─────────────────────────────────────────────────────────────────────────────
# Declarative Base for ORM Models
# All models inherit from this class
# ─────────────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Usage:
        class User(Base):
            __tablename__ = "users"
            id = Column(String(36), primary_key=True, default=new_id)
            ...
    """
    pass


def new_id() -> str:
    """Opaque primary key for users, sessions and products (UUID4 string)."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


from marketplace.app.db.session import (  # noqa: E402
    engine,
    AsyncSessionLocal,
    get_db,
    transaction,
)

__all__ = [
    "Base",
    "new_id",
    "utcnow",
    "engine",
    "AsyncSessionLocal",
    "get_db",
    "transaction",
]
