"""Free booking slots inside a professional's working hours."""

from datetime import date, datetime, timedelta
from typing import Any, List, Sequence
from zoneinfo import ZoneInfo

from agenda.models.agenda_settings import WEEKDAYS
from agenda.models.appointment import AppointmentStatus
from agenda.services.conflict_service import Interval, overlaps
from agenda.services.context import AgendaConfig
from agenda.utils.timeutils import combine_local, ensure_utc, parse_hhmm, to_local


def available_slots(
    day: date,
    agenda: AgendaConfig,
    appointments: Sequence[Any],
    now: datetime,
    tz: ZoneInfo,
) -> List[str]:
    """Start times (local ``HH:MM``) of the free slots on ``day``.

    Slots are ``appointment_duration`` long and start every
    ``appointment_duration + break_time`` minutes from the opening hour.
    Past slots and slots overlapping a non-cancelled appointment are left out.
    """
    hours = agenda.working_hours.get(WEEKDAYS[day.weekday()])
    if not hours or not hours.get("enabled"):
        return []

    opening = combine_local(day, parse_hhmm(hours["start"]), tz)
    closing = combine_local(day, parse_hhmm(hours["end"]), tz)
    length = timedelta(minutes=agenda.appointment_duration)
    step = timedelta(minutes=agenda.appointment_duration + agenda.break_time)

    busy = [
        Interval.of(a)
        for a in appointments
        if a.status != AppointmentStatus.CANCELLED.value
    ]
    now = ensure_utc(now)

    slots: List[str] = []
    current = opening
    while current + length <= closing:
        slot = Interval(current, current + length)
        if current >= now and not any(overlaps(slot, b) for b in busy):
            slots.append(to_local(current, tz).strftime("%H:%M"))
        current += step
    return slots
