"""Shared test fixtures."""

import pytest

from radar.models.detection import Detection


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_detection():
    """Factory for Detections with sensible identifiers."""

    def _make(**overrides) -> Detection:
        fields = {"container_id": "abc123def456", "volume_id": "vol-uuid-1"}
        fields.update(overrides)
        return Detection(**fields)

    return _make
