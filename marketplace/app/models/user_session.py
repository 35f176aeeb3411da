# marketplace/app/models/user_session.py
"""
Server-side record of an issued access token.

A bearer token is only honoured while a row with the same token, the same
user and an expiry in the future exists. Deleting rows revokes tokens
before their own expiry (logout, password change, cleanup sweep).
"""
from sqlalchemy import Column, String, ForeignKey, DateTime
from sqlalchemy.sql import func

from marketplace.app.db.base import Base, new_id


class UserSession(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    token = Column(String(512), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), index=True, nullable=False)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
