# marketplace/app/models/login_attempt.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from marketplace.app.db.base import Base, utcnow


class LoginAttempt(Base):
    """Append-only audit log of login outcomes, used for throttling."""
    __tablename__ = "login_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Both email and IP are tracked to stop targeted and broad attacks
    email = Column(String(255), index=True, nullable=False)
    ip_address = Column(String(45), index=True, nullable=True)

    success = Column(Boolean, nullable=False, default=False)
    # user_not_found | invalid_password, NULL on success
    fail_reason = Column(String(50), nullable=True)

    attempted_at = Column(DateTime(timezone=True), index=True, nullable=False, default=utcnow)
