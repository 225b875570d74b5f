"""Pure punctuality domain: delay derivation, mode tables and service selection."""

from rtt_status.domain.delay import (
    calculate_delay_minutes,
    derive_mode_for_service,
    derive_mode_from_delay,
    effective_delay_minutes,
    has_delay_changed,
)
from rtt_status.domain.modes import (
    AirQuality,
    Mode,
    ModeOption,
    TrainStatus,
    air_quality_for_status,
    delay_to_measured_temperature,
    mode_to_status,
    status_to_mode,
    supported_air_quality,
    supported_modes,
)
from rtt_status.domain.selection import pick_next_service

__all__ = [
    "AirQuality",
    "Mode",
    "ModeOption",
    "TrainStatus",
    "air_quality_for_status",
    "calculate_delay_minutes",
    "delay_to_measured_temperature",
    "derive_mode_for_service",
    "derive_mode_from_delay",
    "effective_delay_minutes",
    "has_delay_changed",
    "mode_to_status",
    "pick_next_service",
    "status_to_mode",
    "supported_air_quality",
    "supported_modes",
]
