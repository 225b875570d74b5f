from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final, TypeVar

from rtt_status.domain.delay import (
    derive_mode_for_service,
    effective_delay_minutes,
    has_delay_changed,
)
from rtt_status.domain.modes import (
    Mode,
    ModeOption,
    TrainStatus,
    mode_to_status,
    supported_modes,
)
from rtt_status.logging import (
    StructuredLogger,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from rtt_status.rtt.errors import ApiErrorKind, RttApiError, error_kind
from rtt_status.service import TrainSelection

VENDOR_ID: Final = 0xFFF1
PRODUCT_ID: Final = 0x8001
DEVICE_TYPE: Final = 0x000F

FetchSelection = Callable[[], Awaitable[TrainSelection]]
L = TypeVar("L")
E = TypeVar("E")


@dataclass(frozen=True)
class StatusChangeEvent:
    """Announcement of one mode transition."""

    timestamp: datetime
    previous_mode: Mode
    current_mode: Mode
    train_status: TrainStatus | None
    selected_service: Mapping[str, object] | None
    delay_minutes: int | None
    error: str | None = None
    mode_changed: bool = True


StatusChangeListener = Callable[[StatusChangeEvent], None]


@dataclass(frozen=True)
class DelayChangeEvent:
    """Announcement of a new delay reading, whether or not the mode moved."""

    timestamp: datetime
    previous_delay: int | None
    current_delay: int | None


DelayChangeListener = Callable[[DelayChangeEvent], None]


@dataclass(frozen=True)
class DeviceInfo:
    device_name: str
    vendor_name: str
    product_name: str
    serial_number: str
    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID
    device_type: int = DEVICE_TYPE


@dataclass
class _ModeState:
    current: Mode = Mode.UNKNOWN
    previous: Mode = Mode.UNKNOWN
    delay: int | None = None
    listeners: list[StatusChangeListener] = field(default_factory=list)
    delay_listeners: list[DelayChangeListener] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _register(listeners: list[L], listener: L) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe() -> None:
        with suppress(ValueError):
            listeners.remove(listener)

    return unsubscribe


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


class TrainStatusDevice:
    """Polls for the selected service and announces punctuality mode changes.

    Updates are serialized; a change notification goes out only when the
    derived mode differs from the current one. Failures force ``UNKNOWN``.
    """

    def __init__(
        self,
        fetch_selection: FetchSelection,
        *,
        device_info: DeviceInfo,
        update_interval: float = 60.0,
        stop_grace_seconds: float = 30.0,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Initialize the device in ``UNKNOWN`` mode with no periodic task.

        Args:
            fetch_selection: Async callable returning the selected service.
            device_info: Identity advertised to the device framework.
            update_interval: Seconds between periodic updates.
            stop_grace_seconds: How long stopping waits for an in-flight
                update before cancelling it.
            logger: Structured logger; defaults to this module's logger.

        Raises:
            ValueError: If ``update_interval`` is not positive.
        """
        if update_interval <= 0:
            raise ValueError("update_interval must be > 0")
        self._fetch_selection = fetch_selection
        self._device_info = device_info
        self._update_interval = update_interval
        self._stop_grace_seconds = stop_grace_seconds
        self._logger: StructuredLogger = (
            get_logger(__name__) if logger is None else logger
        )
        self._state = _ModeState()
        self._update_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def previous_mode(self) -> Mode:
        return self._state.previous

    def get_current_mode(self) -> Mode:
        return self._state.current

    def get_supported_modes(self) -> tuple[ModeOption, ...]:
        return supported_modes()

    def get_device_info(self) -> DeviceInfo:
        return self._device_info

    def get_current_delay(self) -> int | None:
        return self._state.delay

    def subscribe(self, listener: StatusChangeListener) -> Callable[[], None]:
        """Register a mode change listener and return a callable that removes it."""
        return _register(self._state.listeners, listener)

    def subscribe_delay(self, listener: DelayChangeListener) -> Callable[[], None]:
        """Register a delay change listener and return a callable that removes it.

        Delay listeners hear every change of the reported delay, including
        changes within one mode and the drop to ``None`` when an update fails.
        """
        return _register(self._state.delay_listeners, listener)

    async def update_train_status(self) -> TrainSelection:
        """Fetch, derive and apply one mode update.

        Returns:
            The selection the mode was derived from.

        Raises:
            Exception: Whatever ``fetch_selection`` raised, after the mode was
                forced to ``UNKNOWN``.
        """
        async with self._update_lock:
            timestamp = _utcnow()
            try:
                selection = await self._fetch_selection()
            except Exception as exc:
                self._log_update_error(exc)
                self._apply(
                    StatusChangeEvent(
                        timestamp=timestamp,
                        previous_mode=self._state.current,
                        current_mode=Mode.UNKNOWN,
                        train_status=TrainStatus.UNKNOWN,
                        selected_service=None,
                        delay_minutes=None,
                        error=str(exc),
                    )
                )
                self._track_delay(timestamp, None)
                raise

            mode = derive_mode_for_service(selection.selected)
            delay = effective_delay_minutes(selection.selected)
            self._apply(
                StatusChangeEvent(
                    timestamp=timestamp,
                    previous_mode=self._state.current,
                    current_mode=mode,
                    train_status=mode_to_status(mode),
                    selected_service=selection.selected,
                    delay_minutes=delay,
                )
            )
            self._track_delay(timestamp, delay)
            return selection

    async def start_periodic_updates(self) -> None:
        """Run one update now, then keep updating every ``update_interval``.

        The device counts as running from the moment this is called, so a
        concurrent start is a no-op and a concurrent stop waits for the
        initial update and prevents any further tick.
        """
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        initial_done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(
            self._periodic_loop(initial_done),
            name="train-status-updates",
        )
        task.add_done_callback(lambda _: _resolve(initial_done))
        self._task = task
        await initial_done
        if not self._stop_event.is_set():
            log_info(
                self._logger,
                "device.periodic_started",
                interval_seconds=self._update_interval,
            )

    async def stop_periodic_updates(self) -> None:
        """Stop the periodic task; an in-flight update is allowed to finish."""
        self._stop_event.set()
        task = self._task
        if task is None:
            return
        try:
            await asyncio.wait_for(task, timeout=self._stop_grace_seconds)
        except TimeoutError:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if self._task is task:
            self._task = None
        log_info(self._logger, "device.periodic_stopped")

    async def _periodic_loop(self, initial_done: asyncio.Future[None]) -> None:
        try:
            await self._run_tick("initial")
        finally:
            _resolve(initial_done)
        while not self._stop_event.is_set():
            with suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._update_interval,
                )
            if self._stop_event.is_set():
                return
            await self._run_tick("periodic")

    async def _run_tick(self, source: str) -> None:
        log_debug(self._logger, "device.update_started", source=source)
        try:
            await self.update_train_status()
        except Exception as exc:
            log_debug(
                self._logger,
                "device.update_tick_failed",
                source=source,
                error_message=str(exc),
            )

    def _apply(self, event: StatusChangeEvent) -> None:
        if event.current_mode == self._state.current:
            return
        self._state.previous = self._state.current
        self._state.current = event.current_mode
        log_info(
            self._logger,
            "device.mode_changed",
            previous_mode=int(event.previous_mode),
            current_mode=int(event.current_mode),
            train_status=str(event.train_status) if event.train_status else None,
            delay_minutes=event.delay_minutes,
        )
        self._emit(self._state.listeners, event)

    def _track_delay(self, timestamp: datetime, delay: int | None) -> None:
        previous = self._state.delay
        if not has_delay_changed(previous, delay):
            return
        self._state.delay = delay
        log_debug(
            self._logger,
            "device.delay_changed",
            previous_delay=previous,
            current_delay=delay,
        )
        self._emit(
            self._state.delay_listeners,
            DelayChangeEvent(
                timestamp=timestamp,
                previous_delay=previous,
                current_delay=delay,
            ),
        )

    def _emit(self, listeners: list[Callable[[E], None]], event: E) -> None:
        for listener in tuple(listeners):
            try:
                listener(event)
            except Exception as exc:
                log_warning(
                    self._logger,
                    "device.listener_failed",
                    listener=getattr(listener, "__name__", type(listener).__name__),
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )

    def _log_update_error(self, exc: Exception) -> None:
        kind = error_kind(exc)
        fields: dict[str, object] = (
            exc.to_log_fields()
            if isinstance(exc, RttApiError)
            else {"error_type": type(exc).__name__, "error_message": str(exc)}
        )
        if kind in (ApiErrorKind.RETRYABLE, ApiErrorKind.CIRCUIT_OPEN):
            log_warning(self._logger, "device.update_failed", **fields)
        else:
            log_error(self._logger, "device.update_failed", **fields)
