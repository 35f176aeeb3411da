# marketplace/app/security/csrf.py
"""
Synchronizer-token CSRF protection.

The token is kept in the signed cookie session (Starlette SessionMiddleware).
Clients fetch it from GET /auth/csrf-token and echo it back on unsafe
requests, either in the X-CSRF-Token header or in a ``_csrf`` JSON field.
Enforcement is switched on with CSRF_PROTECTION; bearer-token clients do
not carry ambient credentials and leave it off.
"""
import json
import secrets
from typing import Optional

from fastapi import HTTPException, Request, status

from marketplace.app.core.config import settings

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "_csrf"
SESSION_KEY = "csrf_token"


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def issue_csrf_token(request: Request) -> str:
    """Return the session's token, creating one on first use."""
    token = request.session.get(SESSION_KEY)
    if not token:
        token = generate_csrf_token()
        request.session[SESSION_KEY] = token
    return token


async def _token_from_body(request: Request) -> Optional[str]:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict):
        value = body.get(CSRF_FIELD)
        return value if isinstance(value, str) else None
    return None


async def csrf_protect(request: Request) -> None:
    if not settings.CSRF_PROTECTION or request.method in SAFE_METHODS:
        return

    token = request.headers.get(CSRF_HEADER) or await _token_from_body(request)
    session_token = request.session.get(SESSION_KEY) if "session" in request.scope else None

    if not token or not session_token or not secrets.compare_digest(token, session_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid CSRF token.",
        )
