"""Clock arithmetic on RTT ``HHMM`` times."""

from __future__ import annotations

from datetime import date

MINUTES_PER_DAY = 24 * 60


def hhmm_to_minutes(value: object) -> int | None:
    """Convert an ``HHMM`` time (``"0830"``) to minutes since midnight.

    Returns ``None`` for empty, short or non-numeric values.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value)
    if len(text) < 4:
        return None
    hours, minutes = text[:2], text[2:4]
    if not (hours.isdigit() and minutes.isdigit()):
        return None
    return int(hours) * 60 + int(minutes)


def adjust_for_day_rollover(scheduled_minutes: int, current_minutes: int) -> int:
    """Treat a time earlier than ``current_minutes`` as tomorrow's occurrence."""
    if scheduled_minutes < current_minutes:
        return scheduled_minutes + MINUTES_PER_DAY
    return scheduled_minutes


def is_within_time_window(minutes: int, earliest: int, latest: int) -> bool:
    """Return true when ``minutes`` lies in ``[earliest, latest]``."""
    return earliest <= minutes <= latest


def format_date_ymd(value: date) -> str:
    """Format a date the way RTT search paths expect it (``YYYY/MM/DD``)."""
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"
