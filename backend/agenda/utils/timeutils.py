"""Timezone helpers shared by the scheduling services."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def ensure_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime.

    SQLite hands timestamps back without tzinfo; those are stored as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime, tz: ZoneInfo) -> datetime:
    return ensure_utc(value).astimezone(tz)


def local_date(value: datetime, tz: ZoneInfo) -> date:
    return to_local(value, tz).date()


def local_time(value: datetime, tz: ZoneInfo) -> time:
    local = to_local(value, tz)
    return time(local.hour, local.minute, local.second)


def combine_local(day: date, at: time, tz: ZoneInfo) -> datetime:
    """Build the UTC instant for a wall-clock time on a local calendar day."""
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))
