from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from rtt_status.domain.selection import pick_next_service
from rtt_status.logging import StructuredLogger, get_logger, log_debug


class SearchClient(Protocol):
    """The subset of :class:`rtt_status.rtt.RttApiClient` the service needs."""

    async def search(
        self,
        origin: str | None,
        destination: str | None,
        date_value: object,
    ) -> dict[str, object]:
        """Return the decoded RTT search response."""


@dataclass(frozen=True)
class TrainSelection:
    """Selected service plus the raw search response it was picked from."""

    selected: Mapping[str, object] | None
    raw: Mapping[str, object] | None


EMPTY_SELECTION = TrainSelection(selected=None, raw=None)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class TrainStatusService:
    """Search RTT for today's services and pick the next suitable one."""

    def __init__(
        self,
        client: SearchClient,
        *,
        origin: str | None,
        destination: str | None,
        min_after_minutes: int = 20,
        window_minutes: int = 60,
        now_fn: Callable[[], datetime] = _local_now,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._client = client
        self._origin = origin
        self._destination = destination
        self._min_after_minutes = min_after_minutes
        self._window_minutes = window_minutes
        self._now_fn = now_fn
        self._logger: StructuredLogger = (
            get_logger(__name__) if logger is None else logger
        )

    async def fetch_selection(self) -> TrainSelection:
        """Run one search and return the best candidate.

        Missing TIPLOCs short-circuit to an empty selection without a request.
        API errors propagate unchanged.
        """
        if not self._origin or not self._destination:
            log_debug(
                self._logger,
                "service.tiplocs_missing",
                origin=self._origin,
                destination=self._destination,
            )
            return EMPTY_SELECTION

        now = self._now_fn()
        raw = await self._client.search(self._origin, self._destination, now.date())
        services = raw.get("services")
        selected = pick_next_service(
            services if isinstance(services, Sequence) else None,
            self._destination,
            now=now,
            min_after_minutes=self._min_after_minutes,
            window_minutes=self._window_minutes,
            logger=self._logger,
        )
        return TrainSelection(selected=selected, raw=raw)
