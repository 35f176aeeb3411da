# marketplace/app/models/user.py
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float
from sqlalchemy.sql import func

from marketplace.app.db.base import Base, new_id


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)

    # bcrypt hash; never serialized into a response
    password_hash = Column(String(255), nullable=False)

    phone = Column(String(20), nullable=True)
    address = Column(String(500), nullable=True)
    profile_image = Column(String(500), nullable=True)
    bio = Column(String(500), nullable=True)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=True)
    # Soft delete: accounts are flagged, never purged
    is_deleted = Column(Boolean, nullable=False, default=False)

    rating = Column(Float, nullable=False, default=0.0)
    total_sales = Column(Integer, nullable=False, default=0)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
