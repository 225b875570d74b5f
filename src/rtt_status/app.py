"""Process entry point: load settings, wire components, run until shutdown."""

from __future__ import annotations

import asyncio
import signal
import sys
from contextlib import suppress

import httpx
from pydantic import ValidationError

from rtt_status.bridge import (
    DeviceFrameworkBridge,
    EndpointPublisher,
    LoggingDeviceBridge,
)
from rtt_status.circuit_breaker import CircuitBreakerConfig
from rtt_status.device import DeviceInfo, TrainStatusDevice
from rtt_status.logging import (
    bind_device_context,
    clear_device_context,
    configure_structlog,
    get_logger,
    log_error,
    log_info,
)
from rtt_status.rtt import RttApiClient
from rtt_status.service import TrainStatusService
from rtt_status.settings import RttStatusSettings

_logger = get_logger(__name__)


def build_device(
    settings: RttStatusSettings,
    *,
    client: httpx.AsyncClient,
) -> tuple[TrainStatusDevice, RttApiClient]:
    """Wire the API client, status service and device from settings."""
    api_client = RttApiClient(
        client=client,
        username=settings.rtt_user,
        password=settings.rtt_pass,
        base_url=settings.rtt_base_url,
        request_timeout_seconds=settings.rtt_request_timeout_seconds,
        max_retries=settings.rtt_max_retries,
        retry_min_seconds=settings.rtt_retry_min_seconds,
        retry_max_seconds=settings.rtt_retry_max_seconds,
        breaker_config=CircuitBreakerConfig(
            failure_threshold=settings.breaker_failure_threshold,
            success_threshold=settings.breaker_success_threshold,
            recovery_timeout=settings.breaker_recovery_timeout_seconds,
        ),
    )
    service = TrainStatusService(
        api_client,
        origin=settings.origin_tiploc,
        destination=settings.dest_tiploc,
        min_after_minutes=settings.min_after_minutes,
        window_minutes=settings.window_minutes,
    )
    device = TrainStatusDevice(
        service.fetch_selection,
        device_info=DeviceInfo(
            device_name=settings.device_name,
            vendor_name=settings.vendor_name,
            product_name=settings.product_name,
            serial_number=settings.serial_number,
        ),
        update_interval=settings.update_interval_seconds,
    )
    return device, api_client


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        log_info(_logger, "app.shutdown_signal", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _handle_signal, sig)


async def run(
    settings: RttStatusSettings,
    *,
    bridge: DeviceFrameworkBridge | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Poll and publish until a shutdown signal or the exit timer fires."""
    stop_event = asyncio.Event() if stop_event is None else stop_event
    bridge = LoggingDeviceBridge() if bridge is None else bridge
    _install_signal_handlers(stop_event)

    async with httpx.AsyncClient() as client:
        device, _ = build_device(settings, client=client)
        publisher = EndpointPublisher(bridge)
        device.subscribe(publisher)
        device.subscribe_delay(publisher.on_delay_change)
        info = device.get_device_info()
        bind_device_context(
            device_name=info.device_name,
            origin=settings.origin_tiploc,
            destination=settings.dest_tiploc,
        )
        log_info(
            _logger,
            "app.started",
            update_interval_ms=settings.update_interval_ms,
        )
        try:
            await device.start_periodic_updates()
            exit_after = settings.exit_after_seconds
            if exit_after is None:
                await stop_event.wait()
            else:
                with suppress(TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=exit_after)
                log_info(
                    _logger,
                    "app.exit_timer_elapsed",
                    exit_after_ms=settings.exit_after_ms,
                )
        finally:
            await device.stop_periodic_updates()
            await publisher.drain()
            await bridge.close()
            log_info(_logger, "app.stopped")
            clear_device_context()


def main() -> int:
    """Console entry point. Returns the process exit status."""
    try:
        settings = RttStatusSettings()
    except ValidationError as exc:
        configure_structlog(log_level="INFO")
        log_error(
            _logger,
            "app.invalid_configuration",
            errors=exc.errors(include_url=False),
        )
        return 1

    configure_structlog(log_level=settings.log_level)
    asyncio.run(run(settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
