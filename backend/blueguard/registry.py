"""Device registry: owns every device's configuration and its running schedule."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import DuplicateDeviceError, InvalidIntervalError, UnknownDeviceError
from .schemas import DeviceConfig, DevicePatch, DeviceType, Location, Reading

logger = logging.getLogger(__name__)


@dataclass
class DeviceEntry:
    """Registry slot for one device.

    ``config`` is a frozen model swapped in a single assignment, so readers
    always see either the old or the new configuration. ``task`` is the
    device's schedule; ``lock`` is held for the duration of each tick and of
    every schedule change.
    """

    config: DeviceConfig
    task: Optional[asyncio.Task] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_timestamp: Optional[datetime] = None
    last_reading: Optional[Reading] = None

    @property
    def is_scheduled(self) -> bool:
        return self.task is not None and not self.task.done()


class DeviceRegistry:
    """Keyed table of device entries. Devices are never removed, only deactivated."""

    def __init__(self, configs: Optional[List[DeviceConfig]] = None):
        self._entries: Dict[str, DeviceEntry] = {}
        for config in configs or []:
            self.register(config)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._entries

    def __iter__(self) -> Iterator[DeviceEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, config: DeviceConfig) -> DeviceEntry:
        if config.id in self._entries:
            raise DuplicateDeviceError(config.id)
        entry = DeviceEntry(config=config)
        self._entries[config.id] = entry
        logger.info(f"Registered {config.type.value} device {config.id}")
        return entry

    def get(self, device_id: str) -> DeviceEntry:
        try:
            return self._entries[device_id]
        except KeyError:
            raise UnknownDeviceError(device_id) from None

    def config(self, device_id: str) -> DeviceConfig:
        return self.get(device_id).config

    def configs(self) -> List[DeviceConfig]:
        return [entry.config for entry in self]

    def apply_patch(self, device_id: str, patch: DevicePatch) -> Tuple[DeviceConfig, DeviceConfig]:
        """
        Replace a device's configuration with the patched one.

        Returns:
            Tuple of (old, new) configurations
        """
        entry = self.get(device_id)
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        interval = changes.get("sampling_interval")
        if interval is not None and interval <= 0:
            raise InvalidIntervalError(interval)

        old = entry.config
        if "location" in changes:
            changes["location"] = patch.location
        new = DeviceConfig.model_validate({**dict(old), **changes})
        entry.config = new
        return old, new


def default_devices(now: Optional[datetime] = None) -> List[DeviceConfig]:
    """Harbour monitoring network used when nothing else is configured."""
    now = now or datetime.now(timezone.utc)
    return [
        DeviceConfig(
            id="wave_001",
            type=DeviceType.WAVE,
            location=Location(lat=40.7128, lon=-74.0060, name="New York Harbor Alpha"),
            sampling_interval=30,
            last_service=now - timedelta(days=7),
        ),
        DeviceConfig(
            id="tide_001",
            type=DeviceType.TIDE,
            location=Location(lat=40.7589, lon=-73.9851, name="Central Park Reservoir Beta"),
            sampling_interval=60,
            is_active=False,  # offline
            last_service=now - timedelta(days=14),
        ),
        DeviceConfig(
            id="weather_001",
            type=DeviceType.WEATHER,
            location=Location(lat=40.6892, lon=-74.0445, name="Gamma Weather Station"),
            sampling_interval=15,
            last_service=now - timedelta(days=3),
        ),
        DeviceConfig(
            id="seismic_001",
            type=DeviceType.SEISMIC,
            location=Location(lat=40.7282, lon=-74.0776, name="Seismic Monitor Delta"),
            sampling_interval=5,
            last_service=now - timedelta(days=1),
        ),
        DeviceConfig(
            id="water_001",
            type=DeviceType.WATER_QUALITY,
            location=Location(lat=40.7505, lon=-73.9934, name="Water Quality Epsilon"),
            sampling_interval=300,
            last_service=now - timedelta(days=5),
        ),
    ]
