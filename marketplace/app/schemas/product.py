# marketplace/app/schemas/product.py
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from marketplace.app.schemas.common import blank_to_none

ProductCategory = Literal[
    "electronics", "fashion", "beauty", "sports", "books", "food", "furniture", "etc"
]
ConditionStatus = Literal["new", "like_new", "good", "fair", "poor"]

MAX_PRICE = 999_999_999


class ProductSort(str, Enum):
    """Client-facing sort keys; the ORDER BY clause for each lives in the endpoint."""
    latest = "latest"
    price_low = "price_low"
    price_high = "price_high"
    popular = "popular"
    rating = "rating"


class ProductCreate(BaseModel):
    """Body of POST /products and PUT /products/{id} (full replacement)."""
    title: str = Field(..., min_length=2, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    price: int = Field(..., ge=0, le=MAX_PRICE)
    category: ProductCategory
    stock: int = Field(1, ge=1, le=9999)
    location: Optional[str] = Field(None, max_length=100)
    is_negotiable: bool = False
    condition_status: Optional[ConditionStatus] = None

    blank_optional = field_validator("location", "condition_status", mode="before")(blank_to_none)


class ProductSearchParams(BaseModel):
    """Query string of GET /products and GET /products/search."""
    q: Optional[str] = Field(None, max_length=200)
    category: Optional[ProductCategory] = None
    min_price: Optional[int] = Field(None, ge=0, alias="minPrice")
    max_price: Optional[int] = Field(None, ge=0, alias="maxPrice")
    location: Optional[str] = Field(None, max_length=100)
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort: ProductSort = ProductSort.latest

    model_config = {"populate_by_name": True}

    blank_optional = field_validator(
        "q", "category", "min_price", "max_price", "location", mode="before"
    )(blank_to_none)

    @field_validator("page", "limit", mode="before")
    @classmethod
    def default_when_blank(cls, v, info):
        if v is None or (isinstance(v, str) and not v.strip()):
            return {"page": 1, "limit": 20}[info.field_name]
        return v

    @field_validator("sort", mode="before")
    @classmethod
    def unknown_sort_is_latest(cls, v):
        # Unknown keys fall back to newest first instead of failing the request
        if v not in ProductSort._value2member_map_:
            return ProductSort.latest
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ─────────────────────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────────────────────
class ProductImageOut(BaseModel):
    image_url: str
    display_order: int
    is_thumbnail: bool = False

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    id: str
    title: str
    description: str
    price: int
    category: str
    seller_id: str
    stock: int
    location: Optional[str] = None
    is_negotiable: bool
    condition_status: Optional[str] = None
    status: str
    view_count: int
    rating: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    seller_name: Optional[str] = None
    seller_rating: Optional[float] = None
    thumbnail: Optional[str] = None

    class Config:
        from_attributes = True


class ProductDetail(ProductSummary):
    seller_image: Optional[str] = None
    seller_total_sales: Optional[int] = None
    images: List[ProductImageOut] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ProductListData(BaseModel):
    products: List[ProductSummary]
    pagination: Pagination


class ProductSearchData(BaseModel):
    products: List[ProductSummary]
    query: str
    count: int


class ProductRef(BaseModel):
    id: str


class ProductImagesData(BaseModel):
    images: List[ProductImageOut]
