"""Calendar arithmetic for recurring series."""

from datetime import datetime, timedelta
from enum import Enum
from typing import List, Tuple

from dateutil.relativedelta import relativedelta


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


def nth_occurrence(
    base_start: datetime,
    base_end: datetime,
    frequency: Frequency,
    index: int,
    advance_biweekly_end: bool = False,
) -> Tuple[datetime, datetime]:
    """Return the ``index``-th interval of a series starting at the base interval.

    Arithmetic is done on wall-clock time in the datetimes' own tzinfo, so
    pass local times to keep the time-of-day across DST changes.

    Biweekly series only advance the start; the end stays at ``base_end``
    unless ``advance_biweekly_end`` is set. Monthly steps are counted from
    the base date and clamp to the end of shorter months.
    """
    if index < 0:
        raise ValueError("index must be >= 0")
    if index == 0:
        return base_start, base_end

    frequency = Frequency(frequency)
    if frequency is Frequency.WEEKLY:
        step = timedelta(weeks=index)
        return base_start + step, base_end + step
    if frequency is Frequency.BIWEEKLY:
        step = timedelta(weeks=index * 2)
        if advance_biweekly_end:
            return base_start + step, base_end + step
        return base_start + step, base_end
    step = relativedelta(months=index)
    return base_start + step, base_end + step


def occurrence_dates(start: datetime, frequency: Frequency, count: int) -> List[datetime]:
    """Start instants of the first ``count`` occurrences."""
    return [
        nth_occurrence(start, start, frequency, i)[0]
        for i in range(count)
    ]
