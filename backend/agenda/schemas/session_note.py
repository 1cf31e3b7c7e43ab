"""Session note schemas for request/response validation."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel


class SessionNoteCreate(BaseModel):
    appointment_id: int
    content: Optional[Any] = None


class SessionNoteUpdate(BaseModel):
    content: Optional[Any] = None


class SessionNoteResponse(BaseModel):
    id: int
    client_id: int
    client_name: Optional[str] = None
    appointment_id: Optional[int] = None
    session_start: Optional[datetime] = None
    content: Optional[Any] = None
    summary: str = ""
    created_at: datetime
    updated_at: datetime


class SessionNoteListResponse(BaseModel):
    notes: List[SessionNoteResponse]
    total: int
