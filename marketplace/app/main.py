import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from marketplace.app.api.router import api_router
from marketplace.app.core.config import settings
from marketplace.app.core.errors import register_exception_handlers
from marketplace.app.db import init_models
from marketplace.app.security.headers import SecurityHeadersMiddleware
from marketplace.app.security.rate_limit import DeductFailedRequestsMiddleware, RateLimiter
from marketplace.app.security.sanitize import SanitizeInputMiddleware
from marketplace.app.services.cleanup import CleanupScheduler

logger = logging.getLogger(__name__)


def _log_loop_exception(loop, context) -> None:
    # Background task failures are logged; the server keeps serving
    exc = context.get("exception")
    logger.error("Unhandled error in background task: %s", context.get("message"), exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    await init_models()

    app.state.rate_limiter = RateLimiter()

    scheduler = CleanupScheduler()
    if settings.SESSION_CLEANUP_ENABLED:
        scheduler.start()
    app.state.cleanup_scheduler = scheduler

    logger.info(
        "%s %s started (environment=%s, cors=%s)",
        settings.PROJECT_NAME, settings.PROJECT_VERSION,
        settings.ENVIRONMENT, settings.BACKEND_CORS_ORIGINS,
    )
    yield

    scheduler.stop()
    app.state.rate_limiter.reset()
    logger.info("%s stopped", settings.PROJECT_NAME)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    # Added innermost first: the last one added sees the request first
    app.add_middleware(DeductFailedRequestsMiddleware)
    app.add_middleware(SanitizeInputMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET,
        session_cookie="marketplace_session",
        max_age=settings.SESSION_MAX_AGE,
        same_site="strict",
        https_only=settings.is_production,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    if not settings.is_production:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            logger.info("%s %s", request.method, request.url.path)
            return await call_next(request)

    register_exception_handlers(app)

    @app.get(f"{settings.API_PREFIX}/health", tags=["health"])
    async def health():
        return {
            "success": True,
            "message": "Server is running.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(api_router, prefix=settings.API_PREFIX)

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")

    return app


app = create_app()
