"""Realtime Trains punctuality poller for smart-home status devices."""

__version__ = "0.1.0"
