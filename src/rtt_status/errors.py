"""Shared error types for rtt_status."""


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""
