# marketplace/app/core/errors.py
"""
Global exception handlers.

Every error leaves the API in the same envelope:

    { "success": false, "message": "...", "errors": [{field, message}]? }

Unexpected errors are redacted in production; elsewhere the message and
traceback are returned to help debugging.
"""
import logging
import traceback
from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.app.core.config import settings

logger = logging.getLogger(__name__)

VALUE_ERROR_PREFIX = "Value error, "
# Request parts that are not themselves field names
LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _field_name(loc) -> str:
    parts = [str(part) for part in loc]
    if parts and parts[0] in LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "body"


def format_validation_errors(errors) -> List[Dict[str, str]]:
    """One entry per field; the first problem reported for a field wins."""
    formatted: Dict[str, str] = {}
    for error in errors:
        field = _field_name(error.get("loc", ()))
        message = str(error.get("msg", "Invalid value."))
        if message.startswith(VALUE_ERROR_PREFIX):
            message = message[len(VALUE_ERROR_PREFIX):]
        formatted.setdefault(field, message)
    return [{"field": field, "message": message} for field, message in formatted.items()]


def error_response(status_code: int, message: str, headers=None, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc) -> JSONResponse:
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid input.",
        errors=format_validation_errors(exc.errors()),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = "Requested resource not found."
    else:
        message = str(exc.detail)
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(status.HTTP_409_CONFLICT, "Resource already exists.")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    if settings.is_production:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error.")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc) or exc.__class__.__name__,
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
