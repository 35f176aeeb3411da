# marketplace/app/security/jwt.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from marketplace.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign ``data`` into a JWT.

    Every token gets its own ``jti`` so two logins within the same second
    still produce distinct tokens (and distinct session rows).
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.now(timezone.utc)
    to_encode.update({
        "iat": now,
        "exp": now + expires_delta,
        "jti": uuid.uuid4().hex,
    })
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry.

    Raises jose.ExpiredSignatureError for expired tokens and
    jose.JWTError for anything else that is wrong with the token.
    """
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
