"""Fixed punctuality tables shared by the device and its framework bridge."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from types import MappingProxyType
from typing import Final

MIN_TEMPERATURE_CELSIUS: Final = -10
MAX_TEMPERATURE_CELSIUS: Final = 50


class Mode(IntEnum):
    """Five-valued punctuality mode reported to the device framework."""

    ON_TIME = 0
    MINOR_DELAY = 1
    DELAYED = 2
    MAJOR_DELAY = 3
    UNKNOWN = 4

    @property
    def label(self) -> str:
        return MODE_LABELS[self]


MODE_LABELS: Final = MappingProxyType(
    {
        Mode.ON_TIME: "On Time",
        Mode.MINOR_DELAY: "Minor Delay",
        Mode.DELAYED: "Delayed",
        Mode.MAJOR_DELAY: "Major Delay",
        Mode.UNKNOWN: "Unknown",
    }
)


@dataclass(frozen=True)
class ModeOption:
    """One selectable mode as advertised by the device."""

    mode: Mode
    label: str


class TrainStatus(StrEnum):
    ON_TIME = "on_time"
    MINOR_DELAY = "minor_delay"
    DELAYED = "delayed"
    MAJOR_DELAY = "major_delay"
    UNKNOWN = "unknown"
    CRITICAL = "critical"


class AirQuality(IntEnum):
    """Air-quality ordinals used to colour the punctuality indicator."""

    UNKNOWN = 0
    GOOD = 1
    FAIR = 2
    MODERATE = 3
    POOR = 4
    VERY_POOR = 5
    EXTREMELY_POOR = 6


MODE_TO_STATUS: Final = MappingProxyType(
    {
        Mode.ON_TIME: TrainStatus.ON_TIME,
        Mode.MINOR_DELAY: TrainStatus.MINOR_DELAY,
        Mode.DELAYED: TrainStatus.DELAYED,
        Mode.MAJOR_DELAY: TrainStatus.MAJOR_DELAY,
        Mode.UNKNOWN: TrainStatus.UNKNOWN,
    }
)

STATUS_TO_MODE: Final = MappingProxyType(
    {status: mode for mode, status in MODE_TO_STATUS.items()}
)

STATUS_TO_AIR_QUALITY: Final = MappingProxyType(
    {
        TrainStatus.ON_TIME: AirQuality.GOOD,
        TrainStatus.MINOR_DELAY: AirQuality.FAIR,
        TrainStatus.DELAYED: AirQuality.MODERATE,
        TrainStatus.MAJOR_DELAY: AirQuality.POOR,
        TrainStatus.UNKNOWN: AirQuality.VERY_POOR,
        TrainStatus.CRITICAL: AirQuality.VERY_POOR,
    }
)


def supported_modes() -> tuple[ModeOption, ...]:
    """Return the advertised mode list in ordinal order."""
    return tuple(ModeOption(mode=mode, label=mode.label) for mode in Mode)


def mode_to_status(mode: Mode) -> TrainStatus:
    return MODE_TO_STATUS[Mode(mode)]


def status_to_mode(status: TrainStatus | str) -> Mode:
    """Map a status tag to its mode; unrecognized tags map to ``UNKNOWN``."""
    try:
        return STATUS_TO_MODE[TrainStatus(status)]
    except (KeyError, ValueError):
        return Mode.UNKNOWN


def supported_air_quality(value: AirQuality | int) -> AirQuality:
    """Collapse ordinals the endpoint cannot represent onto ``POOR``.

    The endpoint only advertises ``GOOD`` through ``POOR``, so ``VERY_POOR``
    and ``EXTREMELY_POOR`` are published as ``POOR``.
    """
    quality = AirQuality(value)
    if quality > AirQuality.POOR:
        return AirQuality.POOR
    return quality


def air_quality_for_status(status: TrainStatus | str) -> AirQuality:
    """Return the published air quality for a status tag (always 1..4)."""
    try:
        raw = STATUS_TO_AIR_QUALITY[TrainStatus(status)]
    except (KeyError, ValueError):
        raw = STATUS_TO_AIR_QUALITY[TrainStatus.UNKNOWN]
    return supported_air_quality(raw)


def delay_to_measured_temperature(delay_minutes: int | None) -> int | None:
    """Map delay minutes onto a temperature reading in hundredths of a degree.

    The delay is clamped to the sensor range first; ``None`` stays ``None``
    so the reading is published as unknown.
    """
    if delay_minutes is None:
        return None
    clamped = max(MIN_TEMPERATURE_CELSIUS, min(MAX_TEMPERATURE_CELSIUS, delay_minutes))
    return int(clamped) * 100
