"""Admin API endpoints for user management."""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.database import get_db
from agenda.models.appointment import Appointment
from agenda.models.audit_log import AuditAction, AuditLog
from agenda.models.client import Client
from agenda.models.user import User
from agenda.schemas.user import (
    AdminUserResponse,
    UserListResponse,
    UserResponse,
    UserRoleUpdate,
    UserStatusUpdate,
)
from agenda.utils.logging import get_logger
from agenda.utils.security import require_admin, revoke_sessions

logger = get_logger("api.admin")

router = APIRouter()


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> UserListResponse:
    """List all users with their client and appointment counts. Admin only."""
    query = select(User)

    if role:
        query = query.where(User.role == role)
    if is_active is not None:
        query = query.where(User.is_active == is_active)
    if search:
        search_term = f"%{search}%"
        query = query.where(
            User.email.ilike(search_term) | User.full_name.ilike(search_term)
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(User.created_at.desc(), User.id.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    users = (await db.execute(query)).scalars().all()

    ids = [u.id for u in users]
    client_counts = dict(
        (
            await db.execute(
                select(Client.user_id, func.count(Client.id))
                .where(Client.user_id.in_(ids))
                .group_by(Client.user_id)
            )
        ).all()
    )
    appointment_counts = dict(
        (
            await db.execute(
                select(Appointment.user_id, func.count(Appointment.id))
                .where(Appointment.user_id.in_(ids))
                .group_by(Appointment.user_id)
            )
        ).all()
    )

    return UserListResponse(
        users=[
            AdminUserResponse(
                **UserResponse.model_validate(user).model_dump(),
                client_count=client_counts.get(user.id, 0),
                appointment_count=appointment_counts.get(user.id, 0),
            )
            for user in users
        ],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    request: UserStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> User:
    """Activate or deactivate an account. Admin only."""
    user = await _get_user(db, user_id)

    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own status",
        )

    user.is_active = request.is_active
    if not request.is_active:
        revoke_sessions(user)
    db.add(
        AuditLog(
            user_id=current_user.id,
            action=AuditAction.USER_STATUS_CHANGED.value,
            entity_type="user",
            entity_id=str(user.id),
            payload=json.dumps({"is_active": request.is_active}),
        )
    )
    await db.flush()
    await db.refresh(user)

    logger.info(
        "user_status_changed",
        admin_id=current_user.id,
        user_id=user.id,
        is_active=user.is_active,
    )
    return user


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    request: UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> User:
    """Change user role. Admin only."""
    user = await _get_user(db, user_id)

    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own role",
        )

    user.role = request.role.value

    await db.flush()
    await db.refresh(user)

    return user
