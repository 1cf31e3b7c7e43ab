"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.config import settings
from agenda.database import get_db
from agenda.models.agenda_settings import AgendaSettings, default_working_hours
from agenda.models.user import User, UserRole
from agenda.schemas.auth import LoginRequest, PasswordChangeRequest, RegisterRequest, Token
from agenda.schemas.user import UserResponse
from agenda.utils.security import (
    authenticate,
    create_access_token,
    get_current_user,
    get_password_hash,
    revoke_sessions,
    verify_password,
)
from agenda.utils.timeutils import get_zone

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Register a professional account with default agenda settings."""
    result = await db.execute(select(User).where(User.email == request.email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    tz_name = request.timezone or settings.default_timezone
    try:
        get_zone(tz_name)
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown timezone: {tz_name}",
        )

    user = User(
        email=request.email,
        hashed_password=get_password_hash(request.password),
        full_name=request.full_name,
        phone=request.phone,
        role=UserRole.PROFESSIONAL.value,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    db.add(
        AgendaSettings(
            user_id=user.id,
            working_hours=default_working_hours(),
            timezone=tz_name,
        )
    )
    await db.flush()
    await db.refresh(user)

    return user


@router.post("/login", response_model=Token)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Authenticate user and return JWT token."""
    user = await authenticate(db, request.email, request.password)
    await db.flush()

    access_token = create_access_token(user)

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": settings.jwt_expire_minutes * 60,
    }


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current authenticated user information."""
    return current_user


@router.post("/change-password")
async def change_password(
    request: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Change the current user's password."""
    if not verify_password(request.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.hashed_password = get_password_hash(request.new_password)
    revoke_sessions(current_user)
    await db.flush()

    return {"message": "Password changed successfully. Sign in again."}
