"""Appointment model: one concrete occurrence on the calendar."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from agenda.database import Base
from agenda.utils.timeutils import ensure_utc


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    APPOINTMENT = "appointment"
    PERSONAL = "personal"
    BLOCK = "block"


class SessionType(str, Enum):
    SINGLE = "single"
    RECURRING = "recurring"
    PERSONAL = "personal"


class RecurrenceType(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    NONE = "none"


class Appointment(Base):
    """Calendar entry owned by one professional.

    ``appointment_type``, ``session_type`` and ``recurrence_group_id`` are
    written from an ``AppointmentKind`` (see ``agenda.services.kinds``) and
    should not be set independently.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    client_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("clients.id"), nullable=True, index=True
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Classification
    appointment_type: Mapped[str] = mapped_column(
        String(20), default=AppointmentType.APPOINTMENT.value, nullable=False
    )
    session_type: Mapped[str] = mapped_column(
        String(20), default=SessionType.SINGLE.value, nullable=False
    )
    recurrence_group_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    recurrence_type: Mapped[str] = mapped_column(
        String(20), default=RecurrenceType.NONE.value, nullable=False
    )
    recurrence_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Display
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    online_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=AppointmentStatus.SCHEDULED.value,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.id} ({self.status})>"

    @validates("start_time", "end_time")
    def _store_utc(self, key: str, value: datetime) -> datetime:
        # SQLite drops tzinfo, so only UTC may reach the column.
        return ensure_utc(value) if value is not None else value
