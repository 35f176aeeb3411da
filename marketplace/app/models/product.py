# marketplace/app/models/product.py
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Boolean, Float
from sqlalchemy.sql import func

from marketplace.app.db.base import Base, new_id, utcnow


PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_DELETED = "deleted"


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Integer, nullable=False)
    category = Column(String(20), index=True, nullable=False)

    seller_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    stock = Column(Integer, nullable=False, default=1)
    location = Column(String(100), nullable=True)
    is_negotiable = Column(Boolean, nullable=False, default=False)
    condition_status = Column(String(20), nullable=True)

    # Soft delete: "deleted" rows never appear in listings or search
    status = Column(String(20), index=True, nullable=False, default=PRODUCT_STATUS_ACTIVE)

    view_count = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(36), ForeignKey("products.id"), index=True, nullable=False)

    # Public path under /uploads
    image_url = Column(String(500), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_thumbnail = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
