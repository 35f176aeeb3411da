# marketplace/app/api/deps.py
"""
Authentication dependencies.

Resolution of a bearer token, in order:
    no token                    → 401
    bad signature / malformed   → 403
    expired                     → 401
    no live session row         → 401
    user missing or deleted     → 401
    email not verified          → 403
    otherwise                   → the User, with ``session_token`` attached
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.app.db.base import get_db, utcnow
from marketplace.app.models.user import User
from marketplace.app.models.user_session import UserSession
from marketplace.app.schemas.user import TokenPayload
from marketplace.app.security import jwt

logger = logging.getLogger(__name__)

reusable_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def resolve_user(db: AsyncSession, token: Optional[str]) -> User:
    if not token:
        raise _unauthorized("Authentication token is required.")

    try:
        payload = jwt.decode_access_token(token)
        token_data = TokenPayload(**payload)
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired.")
    except (JWTError, ValidationError):
        raise _forbidden("Invalid token.")

    if not token_data.sub:
        raise _forbidden("Invalid token.")

    # The signed token alone is not enough: it must still have a session row
    result = await db.execute(
        select(UserSession.id).where(
            UserSession.token == token,
            UserSession.user_id == token_data.sub,
            UserSession.expires_at > utcnow(),
        )
    )
    if result.first() is None:
        raise _unauthorized("Session has expired or is invalid.")

    result = await db.execute(select(User).where(User.id == token_data.sub))
    user = result.scalars().first()

    if not user or user.is_deleted:
        raise _unauthorized("User not found.")

    if not user.is_verified:
        raise _forbidden("Email verification is required.")

    # Logout needs the exact token that authenticated this request
    user.session_token = token
    return user


async def get_current_user(
        db: AsyncSession = Depends(get_db),
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(reusable_bearer),
) -> User:
    token = credentials.credentials if credentials else None
    return await resolve_user(db, token)


async def get_optional_user(
        db: AsyncSession = Depends(get_db),
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(reusable_bearer),
) -> Optional[User]:
    """Same resolution as get_current_user, but anonymous on any failure."""
    if not credentials:
        return None
    try:
        return await resolve_user(db, credentials.credentials)
    except HTTPException as exc:
        logger.debug("Continuing unauthenticated: %s", exc.detail)
        return None


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise _forbidden("Administrator privileges are required.")
    return current_user


def ensure_owner_or_admin(user: User, owner_id: str) -> None:
    """IDOR guard: only the owner of a resource or an admin may change it."""
    if user.id != owner_id and not user.is_admin:
        raise _forbidden("You do not have permission to modify this resource.")

