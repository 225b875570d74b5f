from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from rtt_status.bridge import EndpointPublisher, LoggingDeviceBridge
from rtt_status.device import (
    DelayChangeEvent,
    DeviceInfo,
    StatusChangeEvent,
    TrainStatusDevice,
)
from rtt_status.domain.modes import AirQuality, Mode, TrainStatus
from tests.rtt_status.support.fakes import (
    FakeBridge,
    FakeLogger,
    ScriptedSelections,
    service_record,
)

pytestmark = pytest.mark.asyncio


def _event(
    current: Mode,
    *,
    status: TrainStatus | None,
    delay: int | None,
) -> StatusChangeEvent:
    return StatusChangeEvent(
        timestamp=datetime(2024, 5, 1, 8, 0, tzinfo=UTC),
        previous_mode=Mode.UNKNOWN,
        current_mode=current,
        train_status=status,
        selected_service=None,
        delay_minutes=delay,
    )


async def test_publish_writes_mode_air_quality_and_temperature(
    fake_bridge: FakeBridge,
) -> None:
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())

    await publisher.publish(_event(Mode.DELAYED, status=TrainStatus.DELAYED, delay=8))

    assert fake_bridge.writes == [
        ("mode", Mode.DELAYED),
        ("air_quality", AirQuality.MODERATE),
        ("temperature", 800),
    ]


async def test_unknown_status_publishes_poor_air_quality_and_unknown_temperature(
    fake_bridge: FakeBridge,
) -> None:
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())

    await publisher.publish(_event(Mode.UNKNOWN, status=TrainStatus.UNKNOWN, delay=None))

    assert fake_bridge.writes == [
        ("mode", Mode.UNKNOWN),
        ("air_quality", AirQuality.POOR),
        ("temperature", None),
    ]


async def test_missing_status_is_derived_from_mode(fake_bridge: FakeBridge) -> None:
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())

    await publisher.publish(_event(Mode.ON_TIME, status=None, delay=0))

    assert ("air_quality", AirQuality.GOOD) in fake_bridge.writes


async def test_publish_failure_is_logged() -> None:
    logger = FakeLogger()
    bridge = FakeBridge(fail_on_mode=True)
    publisher = EndpointPublisher(bridge, logger=logger)

    await publisher.publish(_event(Mode.ON_TIME, status=TrainStatus.ON_TIME, delay=0))

    assert bridge.writes == []
    assert logger.levels_for("bridge.publish_failed") == ["exception"]


async def test_publisher_mirrors_device_transitions(fake_bridge: FakeBridge) -> None:
    device = TrainStatusDevice(
        ScriptedSelections([service_record(lateness=4)]),
        device_info=DeviceInfo(
            device_name="Train Status",
            vendor_name="RTT Status",
            product_name="Indicator",
            serial_number="RTT-0001",
        ),
        logger=FakeLogger(),
    )
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())
    device.subscribe(publisher)

    await device.update_train_status()
    await publisher.drain()

    assert fake_bridge.writes == [
        ("mode", Mode.MINOR_DELAY),
        ("air_quality", AirQuality.FAIR),
        ("temperature", 400),
    ]


async def test_logging_bridge_records_and_logs_writes() -> None:
    logger = FakeLogger()
    bridge = LoggingDeviceBridge(logger=logger)

    await bridge.publish_mode(Mode.MAJOR_DELAY)
    await bridge.publish_air_quality(AirQuality.POOR)
    await bridge.publish_temperature(1500)
    await bridge.close()

    assert bridge.mode == Mode.MAJOR_DELAY
    assert bridge.air_quality == AirQuality.POOR
    assert bridge.measured_value == 1500
    assert logger.events == [
        "bridge.mode_published",
        "bridge.air_quality_published",
        "bridge.temperature_published",
        "bridge.closed",
    ]


class _SlowModeBridge(FakeBridge):
    def __init__(self, mode_latency: dict[Mode, float]) -> None:
        super().__init__()
        self._mode_latency = mode_latency

    async def publish_mode(self, mode: Mode) -> None:
        await asyncio.sleep(self._mode_latency.get(mode, 0.0))
        await super().publish_mode(mode)


def _device(fetch: ScriptedSelections) -> TrainStatusDevice:
    return TrainStatusDevice(
        fetch,
        device_info=DeviceInfo(
            device_name="Train Status",
            vendor_name="RTT Status",
            product_name="Indicator",
            serial_number="RTT-0001",
        ),
        logger=FakeLogger(),
    )


async def test_temperature_tracks_delay_within_one_mode(fake_bridge: FakeBridge) -> None:
    device = _device(
        ScriptedSelections([service_record(lateness=12), service_record(lateness=30)])
    )
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())
    device.subscribe(publisher)
    device.subscribe_delay(publisher.on_delay_change)

    await device.update_train_status()
    await device.update_train_status()
    await publisher.drain()

    temperatures = [value for name, value in fake_bridge.writes if name == "temperature"]
    assert temperatures[-1] == 3000
    assert 1200 in temperatures
    assert [value for name, value in fake_bridge.writes if name == "mode"] == [
        Mode.MAJOR_DELAY
    ]


async def test_publish_delay_writes_unknown_temperature(fake_bridge: FakeBridge) -> None:
    publisher = EndpointPublisher(fake_bridge, logger=FakeLogger())

    await publisher.publish_delay(
        DelayChangeEvent(
            timestamp=datetime(2024, 5, 1, 8, 0, tzinfo=UTC),
            previous_delay=12,
            current_delay=None,
        )
    )

    assert fake_bridge.writes == [("temperature", None)]


async def test_publishes_do_not_interleave_when_bridge_latency_varies() -> None:
    bridge = _SlowModeBridge({Mode.MAJOR_DELAY: 0.02})
    publisher = EndpointPublisher(bridge, logger=FakeLogger())

    publisher(_event(Mode.MAJOR_DELAY, status=TrainStatus.MAJOR_DELAY, delay=15))
    publisher(_event(Mode.ON_TIME, status=TrainStatus.ON_TIME, delay=0))
    await publisher.drain()

    assert bridge.writes == [
        ("mode", Mode.MAJOR_DELAY),
        ("air_quality", AirQuality.POOR),
        ("temperature", 1500),
        ("mode", Mode.ON_TIME),
        ("air_quality", AirQuality.GOOD),
        ("temperature", 0),
    ]
