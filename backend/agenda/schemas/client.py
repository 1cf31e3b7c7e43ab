"""Client schemas for request/response validation."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    birth_date: Optional[date] = None
    notes: Optional[str] = None
    send_session_reminder: bool = True


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    birth_date: Optional[date] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    send_session_reminder: Optional[bool] = None


class ClientResponse(ClientBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ClientListResponse(BaseModel):
    clients: List[ClientResponse]
    total: int


class ClientStats(BaseModel):
    """Session and billing totals for one client."""
    total_sessions: int = 0
    completed_sessions: int = 0
    cancelled_sessions: int = 0
    total_paid: float = 0.0
    total_pending: float = 0.0
