"""Agenda settings schemas."""

from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agenda.models.agenda_settings import WEEKDAYS
from agenda.utils.timeutils import parse_hhmm


class WorkingDay(BaseModel):
    enabled: bool = False
    start: str = Field("09:00", pattern=r"^\d{2}:\d{2}$")
    end: str = Field("18:00", pattern=r"^\d{2}:\d{2}$")

    @model_validator(mode="after")
    def check_window(self) -> "WorkingDay":
        if self.enabled and parse_hhmm(self.end) <= parse_hhmm(self.start):
            raise ValueError("end: must be after start")
        return self


class AgendaSettingsUpdate(BaseModel):
    working_hours: Optional[Dict[str, WorkingDay]] = None
    appointment_duration: Optional[int] = Field(None, ge=5, le=480)
    break_time: Optional[int] = Field(None, ge=0, le=240)
    timezone: Optional[str] = Field(None, max_length=64)

    @field_validator("working_hours")
    @classmethod
    def known_days(cls, value):
        if value is not None:
            unknown = set(value) - set(WEEKDAYS)
            if unknown:
                raise ValueError(f"unknown weekdays: {', '.join(sorted(unknown))}")
        return value

    @field_validator("timezone")
    @classmethod
    def known_zone(cls, value):
        if value is not None:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"unknown timezone: {value}")
        return value


class AgendaSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    working_hours: Dict[str, WorkingDay]
    appointment_duration: int
    break_time: int
    timezone: str
