"""Overlap detection between calendar intervals.

Conflicts are warnings shown to the professional. Nothing here prevents an
appointment from being saved.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.models.appointment import Appointment
from agenda.utils.timeutils import ensure_utc, local_date, to_local


@dataclass(frozen=True)
class Interval:
    """Half-open ``[start, end)`` interval."""
    start: datetime
    end: datetime

    @classmethod
    def of(cls, appointment: Any) -> "Interval":
        return cls(ensure_utc(appointment.start_time), ensure_utc(appointment.end_time))


@dataclass
class SeriesConflict:
    occurrence_id: Optional[int]
    date: date
    time: str
    title: str
    appointment_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "occurrence_id": self.occurrence_id,
            "date": self.date.isoformat(),
            "time": self.time,
            "title": self.title,
            "appointment_id": self.appointment_id,
        }


def overlaps(a: Interval, b: Interval) -> bool:
    # Touching endpoints (10:00-11:00 vs 09:00-10:00) do not overlap.
    return ensure_utc(a.start) < ensure_utc(b.end) and ensure_utc(a.end) > ensure_utc(b.start)


def find_conflict(
    candidate: Interval,
    existing: Iterable[Any],
    exclude_id: Optional[int] = None,
) -> Optional[Any]:
    """First appointment in ``existing`` overlapping ``candidate``, in input order."""
    for appointment in existing:
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        if overlaps(candidate, Interval.of(appointment)):
            return appointment
    return None


def find_series_conflicts(
    candidates: Sequence[Tuple[Optional[int], Interval]],
    existing: Sequence[Any],
    group_id: Optional[str],
    tz: ZoneInfo,
) -> List[SeriesConflict]:
    """Every clash between a series' new times and the rest of the calendar.

    Each ``(occurrence_id, interval)`` is compared with the appointments on
    the same local calendar day that are not part of ``group_id``.
    """
    others = [
        appt for appt in existing
        if group_id is None or appt.recurrence_group_id != group_id
    ]
    conflicts: List[SeriesConflict] = []
    for occurrence_id, interval in candidates:
        day = local_date(interval.start, tz)
        for appt in others:
            if occurrence_id is not None and appt.id == occurrence_id:
                continue
            if local_date(appt.start_time, tz) != day:
                continue
            if overlaps(interval, Interval.of(appt)):
                conflicts.append(
                    SeriesConflict(
                        occurrence_id=occurrence_id,
                        date=day,
                        time=to_local(appt.start_time, tz).strftime("%H:%M"),
                        title=appt.title or "Session",
                        appointment_id=appt.id,
                    )
                )
    return conflicts


def conflict_message(appointment: Any, tz: ZoneInfo, client_name: Optional[str] = None) -> str:
    at = to_local(appointment.start_time, tz).strftime("%H:%M")
    who = client_name or appointment.title or "this time"
    return f"There is already an appointment at {at} for {who}."


async def load_appointments_between(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime,
) -> List[Appointment]:
    """Owner's appointments that overlap ``[start, end)``, ordered by start."""
    result = await db.execute(
        select(Appointment)
        .where(
            Appointment.user_id == user_id,
            Appointment.start_time < ensure_utc(end),
            Appointment.end_time > ensure_utc(start),
        )
        .order_by(Appointment.start_time.asc())
    )
    return list(result.scalars().all())
