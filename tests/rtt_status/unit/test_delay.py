from __future__ import annotations

import pytest

from rtt_status.domain.delay import (
    calculate_delay_minutes,
    derive_mode_for_service,
    derive_mode_from_delay,
    effective_delay_minutes,
    has_delay_changed,
)
from rtt_status.domain.modes import Mode


def _service(**location: object) -> dict[str, object]:
    return {"serviceUid": "W1", "locationDetail": location}


@pytest.mark.parametrize(
    "service",
    [None, {}, {"locationDetail": None}, {"locationDetail": "bogus"}],
)
def test_delay_is_none_without_location_detail(service: object) -> None:
    assert calculate_delay_minutes(service) is None  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "lateness",
    [0, None, "", "abc", float("nan"), float("inf"), True, ["3"]],
)
def test_unusable_lateness_counts_as_zero(lateness: object) -> None:
    assert calculate_delay_minutes(_service(realtimeGbttDepartureLateness=lateness)) == 0


def test_absent_lateness_counts_as_zero() -> None:
    assert calculate_delay_minutes(_service()) == 0


@pytest.mark.parametrize(
    ("lateness", "expected"),
    [
        (7, 7),
        (-3, -3),
        ("12", 12),
        (" -4 ", -4),
        (2.6, 3),
        ("1.4", 1),
        (2.5, 3),
        (3.5, 4),
        (-2.5, -2),
        ("0.5", 1),
    ],
)
def test_numeric_lateness_is_coerced(lateness: object, expected: int) -> None:
    assert calculate_delay_minutes(_service(realtimeGbttDepartureLateness=lateness)) == expected


def test_public_lateness_wins_over_working_lateness() -> None:
    service = _service(realtimeGbttDepartureLateness=4, realtimeWttDepartureLateness=9)

    assert calculate_delay_minutes(service) == 4


def test_working_lateness_used_when_public_absent() -> None:
    service = _service(realtimeGbttDepartureLateness=None, realtimeWttDepartureLateness=9)

    assert calculate_delay_minutes(service) == 9


@pytest.mark.parametrize(
    ("delay", "mode"),
    [
        (None, Mode.UNKNOWN),
        (-30, Mode.ON_TIME),
        (-3, Mode.ON_TIME),
        (-2, Mode.ON_TIME),
        (0, Mode.ON_TIME),
        (2, Mode.ON_TIME),
        (3, Mode.MINOR_DELAY),
        (5, Mode.MINOR_DELAY),
        (6, Mode.DELAYED),
        (10, Mode.DELAYED),
        (11, Mode.MAJOR_DELAY),
        (240, Mode.MAJOR_DELAY),
    ],
)
def test_derive_mode_from_delay(delay: int | None, mode: Mode) -> None:
    assert derive_mode_from_delay(delay) == mode


def test_derive_mode_for_missing_service_is_unknown() -> None:
    assert derive_mode_for_service(None) == Mode.UNKNOWN


def test_derive_mode_for_cancelled_service_is_major_delay() -> None:
    service = _service(realtimeGbttDepartureLateness=0, cancelReasonCode="M8")

    assert derive_mode_for_service(service) == Mode.MAJOR_DELAY


def test_derive_mode_for_late_service() -> None:
    assert derive_mode_for_service(_service(realtimeGbttDepartureLateness=8)) == Mode.DELAYED


@pytest.mark.parametrize(
    ("booked", "realtime", "expected"),
    [("0830", "0838", 8), ("0830", "0827", -3), ("2355", "0004", 9), ("0830", "0830", 0)],
)
def test_delay_falls_back_to_realtime_minus_booked_departure(
    booked: str, realtime: str, expected: int
) -> None:
    service = _service(gbttBookedDeparture=booked, realtimeDeparture=realtime)

    assert calculate_delay_minutes(service) == 0
    assert effective_delay_minutes(service) == expected


def test_visibly_late_service_without_lateness_fields_is_delayed() -> None:
    service = _service(gbttBookedDeparture="0830", realtimeDeparture="0838")

    assert derive_mode_for_service(service) == Mode.DELAYED


@pytest.mark.parametrize(
    "service",
    [
        _service(
            realtimeGbttDepartureLateness=0,
            gbttBookedDeparture="0830",
            realtimeDeparture="0845",
        ),
        _service(gbttBookedDeparture="0830"),
        _service(gbttBookedDeparture="0830", realtimeDeparture="bad"),
        None,
    ],
)
def test_time_fallback_not_used_when_lateness_present_or_times_missing(
    service: dict[str, object] | None,
) -> None:
    assert effective_delay_minutes(service) == calculate_delay_minutes(service)


@pytest.mark.parametrize(
    ("previous", "current", "changed"),
    [
        (None, None, False),
        (None, 0, True),
        (0, None, True),
        (0, 0, False),
        (3, 4, True),
        (-1, -1, False),
    ],
)
def test_has_delay_changed(previous: int | None, current: int | None, changed: bool) -> None:
    assert has_delay_changed(previous, current) is changed
