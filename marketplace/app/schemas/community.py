# marketplace/app/schemas/community.py
"""
Request schemas for buyer/seller interactions: reviews, customer-service
inquiries, chat messages, price suggestions and abuse reports.
"""
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from marketplace.app.schemas.common import blank_to_none
from marketplace.app.schemas.product import MAX_PRICE


class ReviewCreate(BaseModel):
    product_id: UUID
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=10, max_length=1000)


class InquiryCreate(BaseModel):
    email: EmailStr
    title: str = Field(..., min_length=5, max_length=200)
    content: str = Field(..., min_length=10, max_length=2000)
    category: Literal[
        "general", "order", "payment", "delivery", "refund", "product", "account", "etc"
    ]


class MessageCreate(BaseModel):
    chat_room_id: UUID
    content: str = Field(..., min_length=1, max_length=1000)
    message_type: Literal["text", "image", "file", "system"] = "text"


class PriceSuggestionCreate(BaseModel):
    product_id: UUID
    suggested_price: int = Field(..., ge=0, le=MAX_PRICE)
    message: Optional[str] = Field(None, max_length=500)

    blank_optional = field_validator("message", mode="before")(blank_to_none)


class ReportCreate(BaseModel):
    reported_user_id: Optional[UUID] = None
    reported_product_id: Optional[UUID] = None
    reported_review_id: Optional[UUID] = None
    reason: Literal["spam", "fraud", "inappropriate", "copyright", "other"]
    description: str = Field(..., min_length=10, max_length=500)
