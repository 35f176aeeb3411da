import uuid

import pytest
from pydantic import ValidationError

from marketplace.app.schemas.community import (
    InquiryCreate,
    PriceSuggestionCreate,
    ReportCreate,
    ReviewCreate,
)
from marketplace.app.schemas.product import ProductCreate, ProductSearchParams, ProductSort
from marketplace.app.schemas.user import RegisterRequest, UpdateProfileRequest

STRONG = "Passw0rd!"


def _fields(exc_info):
    return {error["loc"][0] for error in exc_info.value.errors()}


def test_register_accepts_hangul_username_and_blank_optionals():
    request = RegisterRequest(
        email="kim@example.com", username="김철수_01", password=STRONG, phone="", address="  "
    )
    assert request.phone is None
    assert request.address is None


@pytest.mark.parametrize("password", ["short1!", "nouppercase1!", "NOLOWER1!", "NoDigits!!", "NoSpecial11"])
def test_register_rejects_weak_passwords(password):
    with pytest.raises(ValidationError) as exc_info:
        RegisterRequest(email="a@example.com", username="user", password=password)
    assert _fields(exc_info) == {"password"}


def test_register_rejects_bad_phone_and_long_email():
    with pytest.raises(ValidationError) as exc_info:
        RegisterRequest(
            email="a" * 250 + "@example.com", username="user", password=STRONG, phone="02-123-4567"
        )
    assert _fields(exc_info) == {"email", "phone"}


def test_profile_update_is_partial():
    update = UpdateProfileRequest(bio="hello")
    assert update.model_dump(exclude_unset=True) == {"bio": "hello"}


def test_product_create_defaults():
    product = ProductCreate(title="Desk", description="Solid oak desk.", price=0, category="furniture")
    assert product.stock == 1
    assert product.is_negotiable is False
    assert product.condition_status is None


def test_product_create_limits():
    with pytest.raises(ValidationError) as exc_info:
        ProductCreate(
            title="Desk", description="too short", price=1_000_000_000,
            category="furniture", stock=0, condition_status="broken",
        )
    assert _fields(exc_info) == {"description", "price", "stock", "condition_status"}


def test_search_params_from_query_strings():
    params = ProductSearchParams.model_validate({
        "q": "lamp", "minPrice": "100", "maxPrice": "", "page": "", "limit": "5", "sort": "popular",
    })
    assert params.min_price == 100
    assert params.max_price is None
    assert params.page == 1
    assert params.limit == 5
    assert params.offset == 0
    assert params.sort is ProductSort.popular


def test_search_params_unknown_sort_falls_back():
    assert ProductSearchParams.model_validate({"sort": "random()"}).sort is ProductSort.latest


def test_search_params_offset():
    assert ProductSearchParams(page=3, limit=10).offset == 20


def test_search_params_reject_bad_numbers():
    with pytest.raises(ValidationError) as exc_info:
        ProductSearchParams.model_validate({"page": "0", "limit": "1000", "minPrice": "-5"})
    assert _fields(exc_info) == {"page", "limit", "minPrice"}


def test_review_rating_range():
    ReviewCreate(product_id=uuid.uuid4(), rating=5, comment="Exactly as described.")
    with pytest.raises(ValidationError):
        ReviewCreate(product_id=uuid.uuid4(), rating=6, comment="Exactly as described.")


def test_community_schemas_require_uuids():
    with pytest.raises(ValidationError) as exc_info:
        PriceSuggestionCreate(product_id="1 OR 1=1", suggested_price=100)
    assert _fields(exc_info) == {"product_id"}


def test_inquiry_and_report_choices():
    InquiryCreate(
        email="a@example.com", title="Late delivery", content="My parcel has not arrived yet.",
        category="delivery",
    )
    with pytest.raises(ValidationError):
        ReportCreate(reason="boring", description="Not a valid report reason.")
