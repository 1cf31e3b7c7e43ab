"""Per-user agenda configuration (working hours, slot sizes, timezone)."""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from agenda.database import Base

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def default_working_hours() -> Dict[str, Dict[str, Any]]:
    hours = {
        day: {"enabled": True, "start": "09:00", "end": "18:00"}
        for day in WEEKDAYS[:5]
    }
    for day in WEEKDAYS[5:]:
        hours[day] = {"enabled": False, "start": "09:00", "end": "12:00"}
    return hours


class AgendaSettings(Base):
    __tablename__ = "agenda_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, unique=True, index=True
    )
    working_hours: Mapped[Dict[str, Any]] = mapped_column(
        JSON, default=default_working_hours, nullable=False
    )
    appointment_duration: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    break_time: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
