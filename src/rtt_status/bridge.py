"""Boundary between status change events and the external device framework."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Protocol

from rtt_status.device import DelayChangeEvent, StatusChangeEvent
from rtt_status.domain.modes import (
    AirQuality,
    Mode,
    air_quality_for_status,
    delay_to_measured_temperature,
    mode_to_status,
)
from rtt_status.logging import StructuredLogger, get_logger, log_exception, log_info


class DeviceFrameworkBridge(Protocol):
    """Attribute writes the device framework must accept."""

    async def publish_mode(self, mode: Mode) -> None:
        """Set the current mode attribute."""

    async def publish_air_quality(self, value: AirQuality) -> None:
        """Set the air quality attribute (always a supported ordinal)."""

    async def publish_temperature(self, measured_value: int | None) -> None:
        """Set the measured temperature in hundredths; ``None`` means unknown."""

    async def close(self) -> None:
        """Release framework resources."""


class LoggingDeviceBridge:
    """Bridge that only logs attribute writes; used when no framework is wired."""

    def __init__(self, *, logger: StructuredLogger | None = None) -> None:
        self._logger: StructuredLogger = (
            get_logger(__name__) if logger is None else logger
        )
        self.mode: Mode | None = None
        self.air_quality: AirQuality | None = None
        self.measured_value: int | None = None

    async def publish_mode(self, mode: Mode) -> None:
        self.mode = mode
        log_info(
            self._logger,
            "bridge.mode_published",
            mode=int(mode),
            label=mode.label,
        )

    async def publish_air_quality(self, value: AirQuality) -> None:
        self.air_quality = value
        log_info(
            self._logger,
            "bridge.air_quality_published",
            air_quality=int(value),
            name=value.name,
        )

    async def publish_temperature(self, measured_value: int | None) -> None:
        self.measured_value = measured_value
        log_info(
            self._logger,
            "bridge.temperature_published",
            measured_value=measured_value,
        )

    async def close(self) -> None:
        log_info(self._logger, "bridge.closed")


class EndpointPublisher:
    """Device listener that mirrors mode and delay changes onto the bridge.

    Device listeners are synchronous, so each event schedules one publish
    task; :meth:`drain` awaits the ones still pending. Publishes hold a lock,
    so the writes of one event never interleave with the next.
    """

    def __init__(
        self,
        bridge: DeviceFrameworkBridge,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._bridge = bridge
        self._logger: StructuredLogger = (
            get_logger(__name__) if logger is None else logger
        )
        self._pending: set[asyncio.Task[None]] = set()
        self._publish_lock = asyncio.Lock()

    def __call__(self, event: StatusChangeEvent) -> None:
        self._schedule(self.publish(event))

    def on_delay_change(self, event: DelayChangeEvent) -> None:
        self._schedule(self.publish_delay(event))

    def _schedule(self, publish: Coroutine[object, object, None]) -> None:
        task = asyncio.get_running_loop().create_task(publish)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def publish(self, event: StatusChangeEvent) -> None:
        """Write mode, air quality and temperature for one event."""
        status = event.train_status or mode_to_status(event.current_mode)
        try:
            async with self._publish_lock:
                await self._bridge.publish_mode(event.current_mode)
                await self._bridge.publish_air_quality(air_quality_for_status(status))
                await self._bridge.publish_temperature(
                    delay_to_measured_temperature(event.delay_minutes)
                )
        except Exception as exc:
            log_exception(
                self._logger,
                "bridge.publish_failed",
                current_mode=int(event.current_mode),
                error_type=type(exc).__name__,
            )

    async def publish_delay(self, event: DelayChangeEvent) -> None:
        """Write the temperature attribute for a new delay reading."""
        try:
            async with self._publish_lock:
                await self._bridge.publish_temperature(
                    delay_to_measured_temperature(event.current_delay)
                )
        except Exception as exc:
            log_exception(
                self._logger,
                "bridge.publish_failed",
                current_delay=event.current_delay,
                error_type=type(exc).__name__,
            )

    async def drain(self) -> None:
        """Wait for every scheduled publish to finish."""
        while self._pending:
            await asyncio.gather(*tuple(self._pending))
