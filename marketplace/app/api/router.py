# marketplace/app/api/router.py
from fastapi import APIRouter, Depends

from marketplace.app.api.endpoints import admin, auth, products
from marketplace.app.schemas.common import ErrorResponse
from marketplace.app.security.csrf import csrf_protect
from marketplace.app.security.rate_limit import api_limiter, global_limiter

# Every /api route is counted by the global limiter and passes the CSRF check
api_router = APIRouter(
    dependencies=[Depends(global_limiter), Depends(csrf_protect)],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(
    products.router,
    prefix="/products",
    tags=["products"],
    dependencies=[Depends(api_limiter)],
)
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
