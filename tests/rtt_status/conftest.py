from __future__ import annotations

import pytest

from tests.rtt_status.support.fakes import FakeBridge, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_bridge() -> FakeBridge:
    """Provide a fresh device framework bridge double per test."""
    return FakeBridge()
