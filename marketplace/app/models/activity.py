# marketplace/app/models/activity.py
"""Per-user browsing history: recently viewed products and past searches."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint

from marketplace.app.db.base import Base, utcnow


class RecentlyViewed(Base):
    __tablename__ = "recently_viewed"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_recently_viewed_user_product"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    viewed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SearchHistory(Base):
    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    search_query = Column(String(200), nullable=False)
    result_count = Column(Integer, nullable=False, default=0)
    searched_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
