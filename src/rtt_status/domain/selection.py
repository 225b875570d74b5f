"""Pick the next suitable service out of an RTT search result."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from rtt_status.domain.timeutils import (
    MINUTES_PER_DAY,
    adjust_for_day_rollover,
    hhmm_to_minutes,
    is_within_time_window,
)
from rtt_status.logging import StructuredLogger, get_logger, log_debug, log_info

_logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Candidate:
    service: Mapping[str, object]
    departure_minutes: int
    arrival_minutes: int


def _as_mapping(value: object) -> Mapping[str, object]:
    return value if isinstance(value, Mapping) else {}


def _first_present(*values: object) -> object:
    for value in values:
        if value:
            return value
    return None


def _find_destination(
    location: Mapping[str, object],
    dest_tiploc: str,
) -> Mapping[str, object] | None:
    destinations = location.get("destination")
    if not isinstance(destinations, Sequence) or isinstance(destinations, str):
        return None
    for entry in destinations:
        if isinstance(entry, Mapping) and entry.get("tiploc") == dest_tiploc:
            return entry
    return None


def _arrival_minutes(
    location: Mapping[str, object],
    destination: Mapping[str, object],
    departure_minutes: int,
) -> int:
    arrival = hhmm_to_minutes(
        _first_present(
            destination.get("workingTime"),
            destination.get("publicTime"),
            location.get("gbttBookedArrival"),
            location.get("realtimeArrival"),
        )
    )
    if arrival is None:
        # Unknown arrival ranks after every known one.
        return departure_minutes + MINUTES_PER_DAY * 2
    return adjust_for_day_rollover(arrival, departure_minutes % MINUTES_PER_DAY) + (
        departure_minutes - departure_minutes % MINUTES_PER_DAY
    )


def pick_next_service(
    services: Sequence[Mapping[str, object]] | None,
    dest_tiploc: str,
    *,
    now: datetime,
    min_after_minutes: int = 20,
    window_minutes: int = 60,
    logger: StructuredLogger | None = None,
) -> Mapping[str, object] | None:
    """Return the best candidate service, or ``None`` when nothing qualifies.

    Candidates depart (booked time, else realtime) within
    ``[now + min_after, now + min_after + window]``, with departures earlier
    than ``now`` treated as tomorrow's, and call at ``dest_tiploc``. They are
    ranked by arrival at the destination, then by departure.
    """
    log = _logger if logger is None else logger
    if not isinstance(services, Sequence) or isinstance(services, str):
        return None

    now_minutes = now.hour * 60 + now.minute
    earliest = now_minutes + min_after_minutes
    latest = earliest + window_minutes

    candidates: list[_Candidate] = []
    for service in services:
        if not isinstance(service, Mapping):
            continue
        location = _as_mapping(service.get("locationDetail"))
        departure = hhmm_to_minutes(
            _first_present(
                location.get("gbttBookedDeparture"),
                location.get("realtimeDeparture"),
            )
        )
        if departure is None:
            continue
        departure = adjust_for_day_rollover(departure, now_minutes)
        if not is_within_time_window(departure, earliest, latest):
            continue
        destination = _find_destination(location, dest_tiploc)
        if destination is None:
            log_debug(
                log,
                "selection.service_excluded",
                service_uid=service.get("serviceUid") or service.get("trainIdentity"),
                dest_tiploc=dest_tiploc,
                reason="destination_not_called",
            )
            continue
        candidates.append(
            _Candidate(
                service=service,
                departure_minutes=departure,
                arrival_minutes=_arrival_minutes(location, destination, departure),
            )
        )

    if not candidates:
        log_info(
            log,
            "selection.no_candidate",
            dest_tiploc=dest_tiploc,
            min_after_minutes=min_after_minutes,
            window_minutes=window_minutes,
        )
        return None

    selected = min(
        candidates,
        key=lambda candidate: (candidate.arrival_minutes, candidate.departure_minutes),
    )
    log_debug(
        log,
        "selection.service_selected",
        service_uid=selected.service.get("serviceUid"),
        departure_minutes=selected.departure_minutes,
        arrival_minutes=selected.arrival_minutes,
    )
    return selected.service
