"""Shared fixtures for the BlueGuard test suite."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from blueguard.schemas import DeviceConfig, DeviceType, Location, Quality, Reading


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class PickSequence:
    """Stand-in rng whose ``choice`` returns items at the given indexes in turn."""

    def __init__(self, indexes, value: float = 0.5):
        self.indexes = list(indexes)
        self.value = value
        self.calls = 0

    def choice(self, seq):
        index = self.indexes[self.calls % len(self.indexes)]
        self.calls += 1
        return seq[index]

    def random(self) -> float:
        return self.value


@pytest.fixture
def now():
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_config(now):
    """Factory for device configurations."""
    def _make(device_id="wave_001", device_type=DeviceType.WAVE, interval=30.0,
              active=True, service_days=2):
        return DeviceConfig(
            id=device_id,
            type=device_type,
            location=Location(lat=40.7128, lon=-74.0060, name=f"{device_id} site"),
            sampling_interval=interval,
            is_active=active,
            last_service=now - timedelta(days=service_days),
        )
    return _make


@pytest.fixture
def make_reading(now):
    """Factory for readings carrying an arbitrary data variant."""
    def _make(data, device_id="wave_001", timestamp=None):
        return Reading(
            device_id=device_id,
            timestamp=timestamp or now,
            data=data,
            quality=Quality.GOOD,
            battery_level=90.0,
            signal_strength=80.0,
        )
    return _make
