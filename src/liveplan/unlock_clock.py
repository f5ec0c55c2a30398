"""Unlock instant for each day of a plan.

Pure functions, no I/O. All arithmetic is calendar-day arithmetic in the
viewer's zone, so a DST change between the start date and the unlock day
never moves the unlock hour.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo

from .errors import InvalidScheduleError


def to_viewer_time(moment: datetime, tz: tzinfo) -> datetime:
    """Express ``moment`` in the viewer's zone. Naive values are viewer wall time."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def unlock_instant(start_date: datetime, day_index: int, unlock_hour: int, tz: tzinfo) -> datetime:
    """Return the instant day ``day_index`` unlocks.

    Day 1 unlocks at ``unlock_hour``:00:00 on the start date, day N at the
    same wall-clock time N-1 calendar days later.

    Raises:
        InvalidScheduleError: day_index is not an integer >= 1, or
            unlock_hour is outside 0-23.
    """
    if isinstance(day_index, bool) or not isinstance(day_index, int) or day_index < 1:
        raise InvalidScheduleError(f"Invalid day index: {day_index!r}")
    if isinstance(unlock_hour, bool) or not isinstance(unlock_hour, int) or not 0 <= unlock_hour <= 23:
        raise InvalidScheduleError(f"Invalid unlock hour: {unlock_hour!r}")

    start_day = to_viewer_time(start_date, tz).date()
    unlock_day = start_day + timedelta(days=day_index - 1)
    return datetime.combine(unlock_day, time(hour=unlock_hour), tzinfo=tz)


def format_unlock_time(instant: datetime) -> str:
    """Format as a 12-hour clock label, e.g. '9:00 PM'."""
    hours = instant.hour
    ampm = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{instant.minute:02d} {ampm}"
