"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from agenda.config import settings
from agenda.models.appointment import AppointmentStatus
from agenda.services.recurrence import Frequency

KindName = Literal["single", "recurring", "personal", "block"]

DEFAULT_COLOR = "#8B5CF6"

# Columns an update may omit but never clear.
NOT_NULL_UPDATE_FIELDS = ("start_time", "end_time", "is_online", "status")


class AppointmentCreate(BaseModel):
    """Form submitted to book one appointment or a recurring series."""
    kind: KindName = "single"
    client_id: Optional[int] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None

    start_time: datetime
    end_time: datetime

    price: Optional[float] = Field(None, ge=0)
    color: str = Field(DEFAULT_COLOR, max_length=20)
    is_online: bool = False
    online_url: Optional[str] = Field(None, max_length=500)

    create_financial_record: bool = False

    recurrence_frequency: Optional[Frequency] = None
    recurrence_count: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def check_form(self) -> "AppointmentCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time: must be after start_time")

        has_client_kind = self.kind in ("single", "recurring")
        if has_client_kind and self.client_id is None:
            raise ValueError("client_id: a client is required for client appointments")
        if not has_client_kind:
            if self.client_id is not None:
                raise ValueError("client_id: personal and block entries cannot have a client")
            if not (self.title and self.title.strip()):
                raise ValueError("title: a title is required for personal and block entries")

        if has_client_kind and self.is_online and not (self.online_url and self.online_url.strip()):
            raise ValueError("online_url: a video call link is required for online sessions")

        if self.kind == "recurring":
            if self.recurrence_frequency is None or self.recurrence_count is None:
                raise ValueError(
                    "recurrence_frequency: frequency and count are required for recurring sessions"
                )
            if self.recurrence_count > settings.max_recurrence_count:
                raise ValueError(
                    f"recurrence_count: at most {settings.max_recurrence_count} occurrences"
                )

        if has_client_kind and self.create_financial_record and self.price is None:
            raise ValueError("price: a price is required to launch a financial record")
        return self


class AppointmentUpdate(BaseModel):
    client_id: Optional[int] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    price: Optional[float] = Field(None, ge=0)
    color: Optional[str] = Field(None, max_length=20)
    is_online: Optional[bool] = None
    online_url: Optional[str] = Field(None, max_length=500)
    status: Optional[AppointmentStatus] = None

    @model_validator(mode="after")
    def check_times(self) -> "AppointmentUpdate":
        for name in NOT_NULL_UPDATE_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name}: may not be null")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time: must be after start_time")
        return self


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    id: int
    kind: KindName
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    appointment_type: str
    session_type: str
    recurrence_group_id: Optional[str] = None
    recurrence_type: str
    recurrence_count: int
    price: Optional[float] = None
    color: Optional[str] = None
    is_online: bool
    online_url: Optional[str] = None
    status: str
    has_note: bool = False
    created_at: datetime
    updated_at: datetime


class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    total: int


class SeriesConflictItem(BaseModel):
    occurrence_id: Optional[int] = None
    date: date
    time: str
    title: str
    appointment_id: int


class AppointmentCreateResponse(BaseModel):
    appointments: List[AppointmentResponse]
    recurrence_group_id: Optional[str] = None
    payments_created: int = 0
    conflict_warning: Optional[str] = None
    conflicts: List[SeriesConflictItem] = []
    warnings: List[str] = []


class AppointmentUpdateResponse(BaseModel):
    scope: str
    appointments: List[AppointmentResponse]
    conflict_warning: Optional[str] = None
    conflicts: List[SeriesConflictItem] = []


class AppointmentDeleteResponse(BaseModel):
    scope: str
    deleted_appointments: int
    deleted_payments: int


class ConflictCheckRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    exclude_id: Optional[int] = None


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    message: Optional[str] = None
    appointment: Optional[AppointmentResponse] = None


class RecurrencePreviewRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    frequency: Frequency
    client_id: Optional[int] = None
    count: int = Field(..., ge=1)

    @model_validator(mode="after")
    def check_preview(self) -> "RecurrencePreviewRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time: must be after start_time")
        if self.count > settings.max_recurrence_count:
            raise ValueError(f"count: at most {settings.max_recurrence_count} occurrences")
        return self


class OccurrenceItem(BaseModel):
    start_time: datetime
    end_time: datetime


class RecurrencePreviewResponse(BaseModel):
    occurrences: List[OccurrenceItem]
    conflicts: List[SeriesConflictItem]


class AvailableSlotsResponse(BaseModel):
    date: date
    slots: List[str]
