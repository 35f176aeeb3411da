# marketplace/app/security/hashing.py
"""
Password hashing with bcrypt (adaptive, fixed cost factor from settings).
"""
import bcrypt

from marketplace.app.core.config import settings

# bcrypt only ever reads the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72

_dummy_hash = None


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def burn_password_check(plain_password: str) -> bool:
    """
    Spend the same bcrypt effort as a real check when there is no user to
    check against, so response timing does not reveal whether an email exists.
    Always returns False.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = get_password_hash("dummy-password-for-timing")
    verify_password(plain_password, _dummy_hash)
    return False
