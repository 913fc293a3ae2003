"""Per-device-type reading generation."""

import math
import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from .schemas import (
    DeviceConfig,
    DeviceType,
    MarineLifeData,
    Quality,
    Reading,
    SeismicData,
    TideData,
    WaterQualityData,
    WaveData,
    WeatherData,
)

SEISMIC_SPIKE_PROBABILITY = 0.05
RAINFALL_PROBABILITY = 0.3
HISTORY_POINTS = 100


def days_since(when: datetime, now: datetime) -> float:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - when).total_seconds() / 86400


def quality_for_service_age(days: float) -> Quality:
    """Grade a reading by how long ago its device was serviced."""
    if days > 30:
        return Quality.POOR
    if days > 14:
        return Quality.FAIR
    if days > 7:
        return Quality.GOOD
    return Quality.EXCELLENT


class ReadingSynthesizer:
    """Generates readings for simulated devices.

    Every value is a deterministic function of the tick time plus a noise
    term drawn from ``rng``; pass a seeded ``random.Random`` for repeatable
    output.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def noise(self, spread: float) -> float:
        """Uniform noise in [-spread/2, spread/2]."""
        return (self.rng.random() - 0.5) * spread

    def synthesize(self, config: DeviceConfig, timestamp: Optional[datetime] = None) -> Reading:
        """Generate one reading for ``config`` at ``timestamp`` (now by default)."""
        timestamp = timestamp or datetime.now(timezone.utc)
        data, spiked = self._generate(config.type, timestamp.timestamp() * 1000)

        service_age = days_since(config.last_service, timestamp)
        # Strong seismic readings are never downgraded for staleness
        quality = Quality.EXCELLENT if spiked else quality_for_service_age(service_age)

        return Reading(
            device_id=config.id,
            timestamp=timestamp,
            data=data,
            quality=quality,
            battery_level=max(10.0, 100 - service_age * 2 + self.noise(10)),
            signal_strength=max(20.0, 100 - self.rng.random() * 30),
        )

    def history(self, config: DeviceConfig, hours: float, end: Optional[datetime] = None) -> List[Reading]:
        """Synthesize evenly spaced readings covering the last ``hours``."""
        end = end or datetime.now(timezone.utc)
        span = timedelta(hours=hours)
        start = end - span
        return [
            self.synthesize(config, start + span * i / (HISTORY_POINTS - 1))
            for i in range(HISTORY_POINTS)
        ]

    def _generate(self, device_type: DeviceType, t: float) -> Tuple[object, bool]:
        rng = self.rng
        if device_type == DeviceType.WAVE:
            return WaveData(
                height=max(0.2, 2.5 + math.sin(t / 60000) * 1.5 + self.noise(1.0)),
                period=8 + rng.random() * 4,
                direction=rng.random() * 360,
                energy=rng.random() * 100,
            ), False

        if device_type == DeviceType.TIDE:
            # 12-hour cycle
            return TideData(
                level=math.sin(t / 43200000) * 2.5 + self.noise(0.3),
                flow=self.noise(2),
                temperature=18 + rng.random() * 8,
            ), False

        if device_type == DeviceType.WEATHER:
            return WeatherData(
                temperature=20 + math.sin(t / 86400000) * 10 + self.noise(3),
                humidity=60 + rng.random() * 30,
                pressure=1013 + self.noise(20),
                wind_speed=max(0.0, 8 + rng.random() * 15),
                wind_direction=rng.random() * 360,
                rainfall=rng.random() * 5 if rng.random() < RAINFALL_PROBABILITY else 0.0,
            ), False

        if device_type == DeviceType.SEISMIC:
            spiked = rng.random() < SEISMIC_SPIKE_PROBABILITY
            magnitude = 2.5 + rng.random() * 2 if spiked else rng.random() * 2.5
            return SeismicData(
                magnitude=magnitude,
                frequency=1 + rng.random() * 10,
                p_wave_velocity=5000 + rng.random() * 1000,
                s_wave_velocity=3000 + rng.random() * 500,
                acceleration=rng.random() * 0.1,
            ), spiked

        if device_type == DeviceType.WATER_QUALITY:
            return WaterQualityData(
                ph=7.0 + self.noise(2),
                dissolved_oxygen=6 + rng.random() * 3,
                turbidity=rng.random() * 10,
                temperature=18 + rng.random() * 8,
                salinity=35 + self.noise(5),
                nitrate_level=rng.random() * 2,
                phosphate_level=rng.random() * 0.5,
            ), False

        if device_type == DeviceType.MARINE_LIFE:
            return MarineLifeData(
                fish_count=math.floor(rng.random() * 50),
                avg_fish_size=10 + rng.random() * 20,
                species_count=math.floor(rng.random() * 10) + 1,
                migration_indicator=rng.random() > 0.7,
                biomass_index=rng.random() * 100,
            ), False

        raise ValueError(f"Unsupported device type: {device_type}")
