# marketplace/app/security/rate_limit.py
"""
Request rate limiting on top of the ``limits`` library.

Counters live in a ``RateLimiter`` owned by the running application
(``app.state.rate_limiter``, created and closed by the lifespan), never in
module globals. ``RateLimit`` instances are stateless FastAPI dependencies
that describe one limit and look the counters up per request.

    global  100 requests / 15 minutes per IP   every /api route
    auth    5 failed requests / 15 minutes     register, login
    api     60 requests / minute per IP        product routes

Limits created with ``skip_successful_requests`` are checked by the
dependency but only charged by ``DeductFailedRequestsMiddleware``, after the
response status is known (validation errors included).
"""
import math
import time
from typing import List, Optional, Tuple

from fastapi import HTTPException, Request, Response, status
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from marketplace.app.core.config import settings

# request.state attribute holding the limits to charge if the request fails
PENDING_DEDUCTIONS = "rate_limit_deductions"


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


class RateLimiter:
    """Moving-window counters keyed by limit scope and client address."""

    def __init__(self) -> None:
        self.storage = MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)

    def hit(self, item: RateLimitItem, *identifiers: str) -> bool:
        return self.strategy.hit(item, *identifiers)

    def test(self, item: RateLimitItem, *identifiers: str) -> bool:
        return self.strategy.test(item, *identifiers)

    def window(self, item: RateLimitItem, *identifiers: str):
        return self.strategy.get_window_stats(item, *identifiers)

    def reset(self) -> None:
        self.storage.reset()


class RateLimit:
    """Dependency enforcing one limit."""

    def __init__(
        self,
        scope: str,
        amount: int,
        window_seconds: int,
        message: str,
        skip_successful_requests: bool = False,
    ) -> None:
        self.scope = scope
        self.item = RateLimitItemPerSecond(amount, window_seconds)
        self.message = message
        self.skip_successful_requests = skip_successful_requests

    def _too_many_requests(self, limiter: RateLimiter, key: str) -> HTTPException:
        stats = limiter.window(self.item, self.scope, key)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=self.message,
            headers={
                "Retry-After": str(retry_after),
                "RateLimit-Limit": str(self.item.amount),
                "RateLimit-Remaining": "0",
                "RateLimit-Reset": str(retry_after),
            },
        )

    def deduct(self, limiter: RateLimiter, key: str) -> None:
        limiter.hit(self.item, self.scope, key)

    async def __call__(self, request: Request, response: Response) -> None:
        limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
        if not settings.RATE_LIMIT_ENABLED or limiter is None:
            return

        key = client_ip(request) or "unknown"

        if self.skip_successful_requests:
            if not limiter.test(self.item, self.scope, key):
                raise self._too_many_requests(limiter, key)
            pending = getattr(request.state, PENDING_DEDUCTIONS, None)
            if pending is not None:
                pending.append((self, limiter, key))
            return

        if not limiter.hit(self.item, self.scope, key):
            raise self._too_many_requests(limiter, key)

        stats = limiter.window(self.item, self.scope, key)
        response.headers["RateLimit-Limit"] = str(self.item.amount)
        response.headers["RateLimit-Remaining"] = str(stats.remaining)
        response.headers["RateLimit-Reset"] = str(max(0, math.ceil(stats.reset_time - time.time())))


class DeductFailedRequestsMiddleware:
    """
    Charges skip-successful limits for responses with status >= 400.

    Must be the innermost user middleware so the request state it seeds is
    the one the route handlers see.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        pending: List[Tuple[RateLimit, RateLimiter, str]] = []
        scope.setdefault("state", {})[PENDING_DEDUCTIONS] = pending
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            if status_code >= 400:
                for limit, limiter, key in pending:
                    limit.deduct(limiter, key)


global_limiter = RateLimit(
    "global",
    settings.RATE_LIMIT_MAX_REQUESTS,
    max(1, settings.RATE_LIMIT_WINDOW_MS // 1000),
    "Too many requests. Please try again later.",
)

auth_limiter = RateLimit(
    "auth",
    settings.AUTH_RATE_LIMIT_MAX,
    settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
    "Too many failed attempts. Please try again in 15 minutes.",
    skip_successful_requests=True,
)

api_limiter = RateLimit(
    "api",
    settings.API_RATE_LIMIT_MAX,
    settings.API_RATE_LIMIT_WINDOW_SECONDS,
    "API request limit exceeded.",
)
