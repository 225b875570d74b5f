from __future__ import annotations

import re

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rtt_status.logging import get_log_level_value
from rtt_status.rtt.constants import DEFAULT_BASE_URL

_TIPLOC_PATTERN = re.compile(r"^[A-Z0-9]{3,8}$")
_PRINTABLE_ASCII = re.compile(r"^[\x20-\x7E]{1,64}$")
_MAX_MINUTES = 24 * 60


class RttStatusSettings(BaseSettings):
    """Process settings for the RTT punctuality poller."""

    model_config = SettingsConfigDict(case_sensitive=False)

    rtt_user: str
    rtt_pass: str
    origin_tiploc: str = "CAMBDGE"
    dest_tiploc: str = "KNGX"
    min_after_minutes: int = 20
    window_minutes: int = 60
    update_interval_ms: int = 60_000

    rtt_base_url: str = DEFAULT_BASE_URL
    rtt_request_timeout_seconds: float = 10.0
    rtt_max_retries: int = 3
    rtt_retry_min_seconds: float = 1.0
    rtt_retry_max_seconds: float = 10.0

    breaker_failure_threshold: int = 5
    breaker_success_threshold: int = 2
    breaker_recovery_timeout_seconds: float = 60.0

    device_name: str = "Train Status"
    vendor_name: str = "RTT Status"
    product_name: str = "Train Punctuality Indicator"
    serial_number: str = "RTT-0001"

    log_level: str = "INFO"
    exit_after_ms: int = 0

    @field_validator("rtt_user", "rtt_pass", mode="before")
    @classmethod
    def _validate_required_string(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("origin_tiploc", "dest_tiploc", mode="before")
    @classmethod
    def _normalize_tiploc(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        if not _TIPLOC_PATTERN.match(normalized):
            raise ValueError(f"{info.field_name} must be 3-8 alphanumeric characters")
        return normalized

    @field_validator(
        "device_name",
        "vendor_name",
        "product_name",
        "serial_number",
        mode="before",
    )
    @classmethod
    def _validate_label(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not _PRINTABLE_ASCII.match(normalized):
            raise ValueError(
                f"{info.field_name} must be 1-64 printable ASCII characters"
            )
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _validate_ranges(self) -> RttStatusSettings:
        if not 0 <= self.min_after_minutes <= _MAX_MINUTES:
            raise ValueError(f"min_after_minutes must be between 0 and {_MAX_MINUTES}")
        if not 1 <= self.window_minutes <= _MAX_MINUTES:
            raise ValueError(f"window_minutes must be between 1 and {_MAX_MINUTES}")
        if self.update_interval_ms <= 0:
            raise ValueError("update_interval_ms must be > 0")
        if self.rtt_request_timeout_seconds <= 0:
            raise ValueError("rtt_request_timeout_seconds must be > 0")
        if self.rtt_max_retries < 0:
            raise ValueError("rtt_max_retries must be >= 0")
        if self.rtt_retry_min_seconds < 0:
            raise ValueError("rtt_retry_min_seconds must be >= 0")
        if self.rtt_retry_max_seconds < self.rtt_retry_min_seconds:
            raise ValueError("rtt_retry_max_seconds must be >= rtt_retry_min_seconds")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_success_threshold < 1:
            raise ValueError("breaker_success_threshold must be >= 1")
        if self.breaker_recovery_timeout_seconds < 0:
            raise ValueError("breaker_recovery_timeout_seconds must be >= 0")
        if self.exit_after_ms < 0:
            raise ValueError("exit_after_ms must be >= 0")
        return self

    @property
    def update_interval_seconds(self) -> float:
        return self.update_interval_ms / 1000.0

    @property
    def exit_after_seconds(self) -> float | None:
        """Return the short-lived run duration, or ``None`` when disabled."""
        if self.exit_after_ms <= 0:
            return None
        return self.exit_after_ms / 1000.0
