# marketplace/app/schemas/user.py
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

from marketplace.app.schemas.common import blank_to_none

# Hangul, latin letters, digits and underscore
USERNAME_PATTERN = re.compile(r"^[가-힣a-zA-Z0-9_]+$")
# Lower, upper, digit and special character, starting with an allowed character
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")
# Korean mobile numbers, dashes optional: 010-1234-5678
PHONE_PATTERN = re.compile(r"^01[0-9]-?[0-9]{3,4}-?[0-9]{4}$")

EMAIL_MAX_LENGTH = 255


def check_username(value: Optional[str]) -> Optional[str]:
    if value is not None and not USERNAME_PATTERN.match(value):
        raise ValueError("Username may only contain letters, digits and underscores.")
    return value


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain upper and lower case letters, a digit and a special character."
        )
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    if value is not None and not PHONE_PATTERN.match(value):
        raise ValueError("Invalid mobile phone number format.")
    return value


def check_email_length(value):
    if isinstance(value, str) and len(value) > EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters.")
    return value


# ─────────────────────────────────────────────────────────────
# Requests
#
# Bodies are HTML-escaped before they reach these models, so every length
# limit below counts the escaped form ("&" is five characters, not one).
# ─────────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=2, max_length=100)
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)

    email_length = field_validator("email", mode="before")(check_email_length)
    blank_optional = field_validator("phone", "address", mode="before")(blank_to_none)
    username_format = field_validator("username")(check_username)
    password_strength = field_validator("password")(check_password_strength)
    phone_format = field_validator("phone")(check_phone)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str

    password_strength = field_validator("new_password")(check_password_strength)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        # new_password is absent from info.data when it failed its own checks
        new_password = info.data.get("new_password")
        if new_password is not None and v != new_password:
            raise ValueError("Passwords do not match.")
        return v


class UpdateProfileRequest(BaseModel):
    username: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=500)

    blank_optional = field_validator("phone", "address", "bio", mode="before")(blank_to_none)
    username_format = field_validator("username")(check_username)
    phone_format = field_validator("phone")(check_phone)


# ─────────────────────────────────────────────────────────────
# Responses (password_hash is never part of any of these)
# ─────────────────────────────────────────────────────────────
class UserPublic(BaseModel):
    id: str
    email: str
    username: str

    class Config:
        from_attributes = True


class UserProfile(BaseModel):
    id: str
    email: str
    username: str
    phone: Optional[str] = None
    address: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    is_admin: bool
    is_verified: bool
    rating: float = 0.0
    total_sales: int = 0
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoginData(BaseModel):
    user: UserProfile
    token: str


class CsrfTokenData(BaseModel):
    csrfToken: str


class TokenPayload(BaseModel):
    sub: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False
    jti: Optional[str] = None
