# marketplace/app/api/endpoints/auth.py
"""
Authentication endpoints.

- POST /auth/register   - create an account
- POST /auth/login      - exchange credentials for a bearer token + session row
- POST /auth/logout     - revoke the session behind the presented token
- GET  /auth/me         - current user's profile
- PUT  /auth/me         - update profile fields
- PUT  /auth/password   - change password, revoking every session of the user
- GET  /auth/csrf-token - CSRF token for cookie-session clients

Security:
- bcrypt hashing with a fixed cost factor
- one undifferentiated message for unknown email and wrong password
- failed logins are throttled per email and per IP
"""
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from marketplace.app.api import deps
from marketplace.app.core.config import settings
from marketplace.app.db.base import get_db, transaction, utcnow
from marketplace.app.models.user import User
from marketplace.app.models.user_session import UserSession
from marketplace.app.schemas.common import ApiResponse
from marketplace.app.schemas.user import (
    ChangePasswordRequest,
    CsrfTokenData,
    LoginData,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    UserProfile,
    UserPublic,
)
from marketplace.app.security import hashing, jwt
from marketplace.app.security.csrf import issue_csrf_token
from marketplace.app.security.login_attempts import (
    FAIL_INVALID_PASSWORD,
    FAIL_USER_NOT_FOUND,
    check_login_attempts,
    log_login_attempt,
)
from marketplace.app.security.rate_limit import auth_limiter, client_ip

router = APIRouter()

INVALID_CREDENTIALS = "Incorrect email or password."


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=INVALID_CREDENTIALS,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[UserPublic],
    dependencies=[Depends(auth_limiter)],
)
async def register(user_in: RegisterRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User.id).where(User.email == user_in.email))
    if result.first() is not None:
        raise HTTPException(status_code=400, detail="Email is already in use.")

    result = await db.execute(select(User.id).where(User.username == user_in.username))
    if result.first() is not None:
        raise HTTPException(status_code=400, detail="Username is already in use.")

    password_hash = await run_in_threadpool(hashing.get_password_hash, user_in.password)

    new_user = User(
        email=user_in.email,
        username=user_in.username,
        password_hash=password_hash,
        phone=user_in.phone,
        address=user_in.address,
        is_verified=not settings.REQUIRE_EMAIL_VERIFICATION,
    )
    # A concurrent duplicate fails the unique index here → 409
    async with transaction(db):
        db.add(new_user)

    return ApiResponse(
        message="Registration complete.",
        data=UserPublic.model_validate(new_user),
    )


@router.post(
    "/login",
    response_model=ApiResponse[LoginData],
    dependencies=[Depends(auth_limiter)],
)
async def login(
        request: Request,
        credentials: LoginRequest,
        db: AsyncSession = Depends(get_db),
):
    ip_address = client_ip(request)

    # Refused before the password is even looked at
    await check_login_attempts(credentials.email, ip_address)

    result = await db.execute(
        select(User).where(User.email == credentials.email, User.is_deleted == False)  # noqa: E712
    )
    user = result.scalars().first()

    if user is None:
        await run_in_threadpool(hashing.burn_password_check, credentials.password)
        await log_login_attempt(credentials.email, ip_address, False, FAIL_USER_NOT_FOUND)
        raise _invalid_credentials()

    is_valid = await run_in_threadpool(
        hashing.verify_password, credentials.password, user.password_hash
    )
    if not is_valid:
        await log_login_attempt(credentials.email, ip_address, False, FAIL_INVALID_PASSWORD)
        raise _invalid_credentials()

    expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = jwt.create_access_token(
        data={"sub": user.id, "email": user.email, "is_admin": user.is_admin},
        expires_delta=expires_delta,
    )

    user_agent = request.headers.get("user-agent")
    async with transaction(db):
        db.add(UserSession(
            user_id=user.id,
            token=token,
            expires_at=utcnow() + expires_delta,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
        ))
        user.last_login_at = utcnow()

    await log_login_attempt(credentials.email, ip_address, True)

    return ApiResponse(
        message="Login successful.",
        data=LoginData(user=UserProfile.model_validate(user), token=token),
    )


@router.post("/logout", response_model=ApiResponse[None])
async def logout(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    async with transaction(db):
        await db.execute(
            delete(UserSession).where(
                UserSession.token == current_user.session_token,
                UserSession.user_id == current_user.id,
            )
        )
    return ApiResponse(message="Logged out.")


@router.get("/me", response_model=ApiResponse[UserProfile])
async def read_me(current_user: User = Depends(deps.get_current_user)):
    return ApiResponse(data=UserProfile.model_validate(current_user))


@router.put("/me", response_model=ApiResponse[UserProfile])
async def update_me(
        profile_in: UpdateProfileRequest,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    update_data = profile_in.model_dump(exclude_unset=True)

    new_username = update_data.get("username")
    if new_username is None:
        update_data.pop("username", None)
    elif new_username != current_user.username:
        result = await db.execute(
            select(User.id).where(User.username == new_username, User.id != current_user.id)
        )
        if result.first() is not None:
            raise HTTPException(status_code=400, detail="Username is already in use.")

    async with transaction(db):
        for key, value in update_data.items():
            setattr(current_user, key, value)

    return ApiResponse(
        message="Profile updated.",
        data=UserProfile.model_validate(current_user),
    )


@router.put("/password", response_model=ApiResponse[None])
async def change_password(
        password_in: ChangePasswordRequest,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(deps.get_current_user),
):
    is_valid = await run_in_threadpool(
        hashing.verify_password, password_in.current_password, current_user.password_hash
    )
    if not is_valid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect.",
        )

    new_hash = await run_in_threadpool(hashing.get_password_hash, password_in.new_password)

    async with transaction(db):
        current_user.password_hash = new_hash
        # Every device has to log in again
        await db.execute(delete(UserSession).where(UserSession.user_id == current_user.id))

    return ApiResponse(message="Password changed. Please log in again.")


@router.get("/csrf-token", response_model=ApiResponse[CsrfTokenData])
async def get_csrf_token(request: Request):
    return ApiResponse(data=CsrfTokenData(csrfToken=issue_csrf_token(request)))
