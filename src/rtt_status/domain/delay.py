"""Derive signed delay minutes and punctuality modes from RTT service records."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Final

from rtt_status.domain.modes import Mode
from rtt_status.domain.timeutils import MINUTES_PER_DAY, hhmm_to_minutes

ON_TIME_THRESHOLD: Final = 2
MINOR_DELAY_THRESHOLD: Final = 5
DELAYED_THRESHOLD: Final = 10

_LATENESS_FIELDS: Final = (
    "realtimeGbttDepartureLateness",
    "realtimeWttDepartureLateness",
)


def _coerce_lateness(value: object) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return 0
    if not math.isfinite(number):
        return 0
    # Half-up: 2.5 -> 3, -2.5 -> -2.
    return math.floor(number + 0.5)


def calculate_delay_minutes(service: Mapping[str, object] | None) -> int | None:
    """Return signed departure lateness in minutes for a selected service.

    The public-timetable lateness wins over the working-timetable one, which
    is used only when the former is absent. Returns ``None`` only when the
    service has no ``locationDetail``; unusable lateness values count as ``0``.
    """
    if not isinstance(service, Mapping):
        return None
    location = service.get("locationDetail")
    if not isinstance(location, Mapping):
        return None

    for field in _LATENESS_FIELDS:
        value = location.get(field)
        if value is not None:
            return _coerce_lateness(value)
    return 0


def derive_mode_from_delay(delay_minutes: int | None) -> Mode:
    """Classify signed delay minutes into a :class:`Mode`.

    Early running (any negative delay) is on time.
    """
    if delay_minutes is None:
        return Mode.UNKNOWN
    if delay_minutes <= ON_TIME_THRESHOLD:
        return Mode.ON_TIME
    if delay_minutes <= MINOR_DELAY_THRESHOLD:
        return Mode.MINOR_DELAY
    if delay_minutes <= DELAYED_THRESHOLD:
        return Mode.DELAYED
    return Mode.MAJOR_DELAY


def is_cancelled(service: Mapping[str, object] | None) -> bool:
    if not isinstance(service, Mapping):
        return False
    location = service.get("locationDetail")
    if isinstance(location, Mapping) and location.get("cancelReasonCode"):
        return True
    return bool(service.get("cancelReasonCode"))


def _lateness_from_times(location: Mapping[str, object]) -> int | None:
    booked = hhmm_to_minutes(location.get("gbttBookedDeparture"))
    actual = hhmm_to_minutes(location.get("realtimeDeparture"))
    if booked is None or actual is None:
        return None
    lateness = actual - booked
    # A departure booked just before midnight can run after it.
    if lateness < -MINUTES_PER_DAY // 2:
        lateness += MINUTES_PER_DAY
    return lateness


def effective_delay_minutes(service: Mapping[str, object] | None) -> int | None:
    """Return the delay used for mode and temperature reporting.

    Same as :func:`calculate_delay_minutes`, except that when both lateness
    fields are absent the delay is worked out as ``realtimeDeparture`` minus
    ``gbttBookedDeparture``, if both times are present.
    """
    delay = calculate_delay_minutes(service)
    if delay != 0 or service is None:
        return delay
    location = service.get("locationDetail")
    if not isinstance(location, Mapping):
        return delay
    if any(location.get(field) is not None for field in _LATENESS_FIELDS):
        return delay
    derived = _lateness_from_times(location)
    return delay if derived is None else derived


def derive_mode_for_service(service: Mapping[str, object] | None) -> Mode:
    """Return the mode for a selected service; cancellations are major delays."""
    if is_cancelled(service):
        return Mode.MAJOR_DELAY
    return derive_mode_from_delay(effective_delay_minutes(service))


def has_delay_changed(previous: int | None, current: int | None) -> bool:
    """Return true when two delay readings differ; ``None`` differs from ``0``."""
    if previous is None or current is None:
        return (previous is None) != (current is None)
    return previous != current
