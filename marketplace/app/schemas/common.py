# marketplace/app/schemas/common.py
"""
Response envelope shared by every endpoint.

    { "success": true, "message": "...", "data": {...} }

Errors use the same shape with ``success: false`` (see core/errors.py).
"""
import re
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

# Hyphenated UUID of any version
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[List[FieldError]] = None


def blank_to_none(value):
    """Treat '' the same as a missing optional value."""
    if isinstance(value, str) and value.strip() == "":
        return None
    return value
