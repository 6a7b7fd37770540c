"""
Authentication API routes.

Provides endpoints for:
- User registration
- User login (JWT generation)
- Token refresh
- Current user profile
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nitpickr.config.settings import get_settings
from nitpickr.database import get_db
from nitpickr.infrastructure.cache import QueryCache
from nitpickr.middleware.auth import get_current_active_user
from nitpickr.middleware.usage import get_query_cache
from nitpickr.models import User
from nitpickr.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)

router = APIRouter(prefix="/api/auth", tags=["authentication"])

settings = get_settings()


# Pydantic schemas
class LoginRequest(BaseModel):
    """Schema for login request."""

    email: EmailStr
    password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    """Schema for token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class RegisterRequest(BaseModel):
    """Schema for user registration request."""

    email: EmailStr
    name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8)


class UserResponse(BaseModel):
    """Schema for user response."""

    id: UUID
    email: str
    name: str
    image: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


def _issue_tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user_id=user.id, email=user.email),
        refresh_token=create_refresh_token(user_id=user.id),
        token_type="bearer",
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    register_data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Register a new user.

    Raises:
        HTTPException: If the email is already registered
    """
    email = register_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"User with email '{email}' already exists",
        )

    user = User(
        email=email,
        name=User.normalize_name(register_data.name),
        hashed_password=hash_password(register_data.password),
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    await cache.invalidate("User")
    return user


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
):
    """
    Authenticate user and return JWT tokens.

    Failed attempts are counted; the account locks after
    ``max_login_attempts`` consecutive failures.

    Raises:
        HTTPException: If credentials are invalid or the account is locked/disabled
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    invalid_credentials = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect email or password",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not user or not user.hashed_password:
        raise invalid_credentials

    if user.locked_at:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is locked")

    if not verify_password(login_data.password, user.hashed_password):
        user.invalid_login_attempts = (user.invalid_login_attempts or 0) + 1
        if user.invalid_login_attempts >= settings.max_login_attempts:
            user.locked_at = datetime.now(timezone.utc)
        await db.commit()
        await cache.invalidate("User")
        raise invalid_credentials

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    if user.invalid_login_attempts:
        user.invalid_login_attempts = 0
        await db.commit()
        await cache.invalidate("User")

    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(refresh_data: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    """
    Refresh access token using refresh token.

    Raises:
        HTTPException: If refresh token is invalid
    """
    try:
        payload = verify_token(refresh_data.refresh_token, token_type="refresh")
        user_id = UUID(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user),
    cache: QueryCache = Depends(get_query_cache),
):
    """Get current authenticated user information; served from the query cache when enabled."""

    async def load_profile() -> dict:
        return UserResponse.model_validate(current_user).model_dump(mode="json")

    return await cache.get_or_load("User", "findUnique", {"id": str(current_user.id)}, load_profile)
