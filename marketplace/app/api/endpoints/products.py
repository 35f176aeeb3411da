# marketplace/app/api/endpoints/products.py
"""
Product endpoints.

Listing and search only ever show ``active`` products. Filters and sort keys
come from fixed allow-lists; user text reaches SQL only as bound parameters.
"""
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.app.api import deps
from marketplace.app.db.base import get_db, transaction, utcnow
from marketplace.app.models.activity import RecentlyViewed, SearchHistory
from marketplace.app.models.product import (
    PRODUCT_STATUS_ACTIVE,
    PRODUCT_STATUS_DELETED,
    Product,
    ProductImage,
)
from marketplace.app.models.user import User
from marketplace.app.schemas.common import UUID_PATTERN, ApiResponse
from marketplace.app.schemas.product import (
    Pagination,
    ProductCreate,
    ProductDetail,
    ProductImageOut,
    ProductImagesData,
    ProductListData,
    ProductRef,
    ProductSearchData,
    ProductSearchParams,
    ProductSort,
    ProductSummary,
)
from marketplace.app.security.uploads import delete_file, save_uploads

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_ORDER = {
    ProductSort.latest: Product.created_at.desc(),
    ProductSort.price_low: Product.price.asc(),
    ProductSort.price_high: Product.price.desc(),
    ProductSort.popular: Product.view_count.desc(),
    ProductSort.rating: Product.rating.desc(),
}


def search_params(request: Request) -> ProductSearchParams:
    try:
        return ProductSearchParams.model_validate(dict(request.query_params))
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


def _check_product_id(product_id: str) -> None:
    if not UUID_PATTERN.match(product_id):
        raise HTTPException(status_code=400, detail="Invalid product id.")


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Product not found.")


def _thumbnail():
    return (
        select(ProductImage.image_url)
        .where(ProductImage.product_id == Product.id, ProductImage.is_thumbnail == True)  # noqa: E712
        .order_by(ProductImage.display_order)
        .limit(1)
        .correlate(Product)
        .scalar_subquery()
    )


def _summary_query():
    return (
        select(
            Product,
            User.username.label("seller_name"),
            User.rating.label("seller_rating"),
            _thumbnail().label("thumbnail"),
        )
        .join(User, Product.seller_id == User.id)
        .where(Product.status == PRODUCT_STATUS_ACTIVE)
    )


def _apply_filters(stmt, params: ProductSearchParams):
    if params.category:
        stmt = stmt.where(Product.category == params.category)
    if params.min_price is not None:
        stmt = stmt.where(Product.price >= params.min_price)
    if params.max_price is not None:
        stmt = stmt.where(Product.price <= params.max_price)
    if params.location:
        stmt = stmt.where(Product.location.contains(params.location, autoescape=True))
    return stmt


def _to_summary(row) -> ProductSummary:
    return ProductSummary.model_validate(row.Product).model_copy(update={
        "seller_name": row.seller_name,
        "seller_rating": row.seller_rating,
        "thumbnail": row.thumbnail,
    })


async def _get_live_product(db: AsyncSession, product_id: str) -> Product:
    _check_product_id(product_id)
    result = await db.execute(select(Product).where(Product.id == product_id))
    product = result.scalars().first()
    if product is None or product.status == PRODUCT_STATUS_DELETED:
        raise _not_found()
    return product


async def _record_recent_view(db: AsyncSession, user_id: str, product_id: str) -> None:
    """Insert the (user, product) row, or bump ``viewed_at`` when it already exists."""
    try:
        async with transaction(db):
            db.add(RecentlyViewed(user_id=user_id, product_id=product_id))
    except IntegrityError:
        async with transaction(db):
            await db.execute(
                update(RecentlyViewed)
                .where(
                    RecentlyViewed.user_id == user_id,
                    RecentlyViewed.product_id == product_id,
                )
                .values(viewed_at=utcnow())
                .execution_options(synchronize_session=False)
            )


@router.get("", response_model=ApiResponse[ProductListData])
async def list_products(
        params: ProductSearchParams = Depends(search_params),
        db: AsyncSession = Depends(get_db),
):
    stmt = (
        _apply_filters(_summary_query(), params)
        .order_by(SORT_ORDER[params.sort], Product.id)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).all()

    count_stmt = _apply_filters(
        select(func.count(Product.id)).where(Product.status == PRODUCT_STATUS_ACTIVE),
        params,
    )
    total = (await db.execute(count_stmt)).scalar_one()

    return ApiResponse(data=ProductListData(
        products=[_to_summary(row) for row in rows],
        pagination=Pagination(
            page=params.page,
            limit=params.limit,
            total=total,
            totalPages=math.ceil(total / params.limit),
        ),
    ))


@router.get("/search", response_model=ApiResponse[ProductSearchData])
async def search_products(
        params: ProductSearchParams = Depends(search_params),
        db: AsyncSession = Depends(get_db),
        current_user: Optional[User] = Depends(deps.get_optional_user),
):
    query = (params.q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Please enter a search term.")

    in_title = Product.title.contains(query, autoescape=True)
    relevance = case((in_title, 1), else_=0)
    stmt = (
        _apply_filters(_summary_query(), params)
        .where(or_(in_title, Product.description.contains(query, autoescape=True)))
        .order_by(relevance.desc(), Product.created_at.desc(), Product.id)
        .limit(params.limit)
        .offset(params.offset)
    )
    products = [_to_summary(row) for row in (await db.execute(stmt)).all()]

    if current_user is not None:
        async with transaction(db):
            db.add(SearchHistory(
                user_id=current_user.id,
                search_query=query,
                result_count=len(products),
            ))

    return ApiResponse(data=ProductSearchData(products=products, query=query, count=len(products)))


@router.get("/{product_id}", response_model=ApiResponse[ProductDetail])
async def get_product(
        product_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: Optional[User] = Depends(deps.get_optional_user),
):
    _check_product_id(product_id)

    result = await db.execute(
        select(Product, User)
        .join(User, Product.seller_id == User.id)
        .where(Product.id == product_id)
    )
    row = result.first()
    if row is None or row.Product.status == PRODUCT_STATUS_DELETED:
        raise _not_found()
    product, seller = row.Product, row.User

    result = await db.execute(
        select(ProductImage)
        .where(ProductImage.product_id == product_id)
        .order_by(ProductImage.display_order, ProductImage.id)
    )
    images = [ProductImageOut.model_validate(image) for image in result.scalars().all()]
    thumbnail = next((image.image_url for image in images if image.is_thumbnail), None)

    detail = ProductDetail.model_validate(product).model_copy(update={
        "seller_name": seller.username,
        "seller_rating": seller.rating,
        "seller_image": seller.profile_image,
        "seller_total_sales": seller.total_sales,
        "thumbnail": thumbnail,
        "images": images,
    })

    user_id = current_user.id if current_user is not None else None
    async with transaction(db):
        # Read-modify-write races on the counter are tolerated
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(view_count=Product.view_count + 1)
            .execution_options(synchronize_session=False)
        )
    if user_id is not None:
        await _record_recent_view(db, user_id, product_id)

    return ApiResponse(data=detail)

@router.post("", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[ProductRef])
async def create_product(
        product_in: ProductCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    product = Product(**product_in.model_dump(), seller_id=current_user.id)
    async with transaction(db):
        db.add(product)

    logger.info("User %s listed product %s", current_user.id, product.id)
    return ApiResponse(message="Product created.", data=ProductRef(id=product.id))


@router.put("/{product_id}", response_model=ApiResponse[ProductRef])
async def update_product(
        product_id: str,
        product_in: ProductCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    product = await _get_live_product(db, product_id)
    deps.ensure_owner_or_admin(current_user, product.seller_id)

    async with transaction(db):
        for key, value in product_in.model_dump().items():
            setattr(product, key, value)

    return ApiResponse(message="Product updated.", data=ProductRef(id=product.id))


@router.delete("/{product_id}", response_model=ApiResponse[None])
async def delete_product(
        product_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    product = await _get_live_product(db, product_id)
    deps.ensure_owner_or_admin(current_user, product.seller_id)

    async with transaction(db):
        product.status = PRODUCT_STATUS_DELETED

    logger.info("User %s deleted product %s", current_user.id, product.id)
    return ApiResponse(message="Product deleted.")


@router.post(
    "/{product_id}/images",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ProductImagesData],
)
async def upload_product_images(
        product_id: str,
        files: List[UploadFile] = File(...),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    product = await _get_live_product(db, product_id)
    deps.ensure_owner_or_admin(current_user, product.seller_id)

    result = await db.execute(
        select(
            func.coalesce(func.max(ProductImage.display_order), -1),
            func.coalesce(func.sum(case((ProductImage.is_thumbnail == True, 1), else_=0)), 0),  # noqa: E712
        ).where(ProductImage.product_id == product_id)
    )
    last_order, thumbnails = result.one()

    stored = await save_uploads(files)

    images = [
        ProductImage(
            product_id=product_id,
            image_url=item.url,
            display_order=last_order + 1 + index,
            is_thumbnail=(thumbnails == 0 and index == 0),
        )
        for index, item in enumerate(stored)
    ]
    try:
        async with transaction(db):
            db.add_all(images)
    except Exception:
        for item in stored:
            delete_file(item.path)
        raise

    return ApiResponse(
        message="Images uploaded.",
        data=ProductImagesData(images=[ProductImageOut.model_validate(image) for image in images]),
    )
