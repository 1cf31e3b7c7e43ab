"""User schemas for request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from agenda.models.user import UserRole


class UserBase(BaseModel):
    """Base user schema."""
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class UserRoleUpdate(BaseModel):
    """Schema for updating user role."""
    role: UserRole


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserResponse(UserBase):
    """User response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class AdminUserResponse(UserResponse):
    """User row on the admin listing, with usage counts."""
    client_count: int = 0
    appointment_count: int = 0


class UserListResponse(BaseModel):
    """Paginated user list response."""
    users: list[AdminUserResponse]
    total: int
    page: int
    page_size: int
