"""Per-device tick scheduling: synthesize, evaluate, publish."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .alerts import AlertSink
from .errors import ReadingTypeMismatchError, StaleReadingError
from .realtime import BroadcastHub
from .registry import DeviceEntry, DeviceRegistry
from .schemas import (
    DeviceConfig,
    DevicePatch,
    DeviceStatus,
    Envelope,
    NetworkTopology,
    Quality,
    Reading,
)
from .synthesizer import ReadingSynthesizer
from .thresholds import ThresholdEngine

logger = logging.getLogger(__name__)

SERVICE_PERIOD_DAYS = 30
KBPS_PER_DEVICE = 2.5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TelemetryStream:
    """Runs one recurring tick per active device.

    Each tick synthesizes a reading, evaluates it against the threshold
    rules, publishes the envelope to the hub and hands any alerts to the
    sink. A device's tick runs under that device's lock, and every schedule
    change (activate, deactivate, interval change) takes the same lock, so a
    device never has two ticks in flight and a cancelled schedule never
    interrupts a tick.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        synthesizer: ReadingSynthesizer,
        engine: ThresholdEngine,
        hub: BroadcastHub,
        alert_sink: Optional[AlertSink] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.synthesizer = synthesizer
        self.engine = engine
        self.hub = hub
        self.alert_sink = alert_sink
        self.clock = clock
        self.running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start a schedule for every active device."""
        self.running = True
        for entry in self.registry:
            if entry.config.is_active and not entry.is_scheduled:
                self._schedule(entry)
        logger.info(f"Telemetry stream started ({len(self.scheduled_devices())} devices ticking)")

    async def shutdown(self) -> None:
        """Cancel every schedule and release every subscriber."""
        self.running = False
        for entry in self.registry:
            async with entry.lock:
                await self._cancel(entry)
        self.hub.close()
        logger.info("Telemetry stream stopped")

    def scheduled_devices(self) -> List[str]:
        return [entry.config.id for entry in self.registry if entry.is_scheduled]

    # ------------------------------------------------------------------
    # Registration and reconfiguration
    # ------------------------------------------------------------------

    def register(self, config: DeviceConfig) -> DeviceConfig:
        entry = self.registry.register(config)
        if self.running and config.is_active:
            self._schedule(entry)
        return config

    async def reconfigure(self, device_id: str, patch: DevicePatch) -> DeviceConfig:
        """
        Apply a partial configuration change.

        An interval change on a ticking device replaces its schedule; toggling
        the active flag starts or cancels it. Missed ticks are never replayed.
        """
        entry = self.registry.get(device_id)
        async with entry.lock:
            old, new = self.registry.apply_patch(device_id, patch)

            if not new.is_active:
                if entry.is_scheduled:
                    await self._cancel(entry)
                    logger.info(f"Device {device_id} deactivated")
            elif self.running:
                if not entry.is_scheduled:
                    self._schedule(entry)
                    logger.info(f"Device {device_id} activated")
                elif new.sampling_interval != old.sampling_interval:
                    await self._cancel(entry)
                    self._schedule(entry)
                    logger.info(
                        f"Device {device_id} rescheduled from {old.sampling_interval}s "
                        f"to {new.sampling_interval}s"
                    )
        return new

    async def set_active(self, device_id: str, active: bool) -> DeviceConfig:
        return await self.reconfigure(device_id, DevicePatch(is_active=active))

    async def record_service(self, device_id: str, serviced_at: Optional[datetime] = None) -> DeviceConfig:
        return await self.reconfigure(device_id, DevicePatch(last_service=serviced_at or self.clock()))

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    def _schedule(self, entry: DeviceEntry) -> None:
        interval = entry.config.sampling_interval
        entry.task = asyncio.create_task(
            self._run(entry, interval), name=f"tick-{entry.config.id}"
        )

    async def _cancel(self, entry: DeviceEntry) -> None:
        task, entry.task = entry.task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, entry: DeviceEntry, interval: float) -> None:
        """Tick every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            async with entry.lock:
                self.tick(entry)

    def _next_timestamp(self, entry: DeviceEntry) -> datetime:
        timestamp = self.clock()
        if entry.last_timestamp is not None and timestamp <= entry.last_timestamp:
            timestamp = entry.last_timestamp + timedelta(microseconds=1)
        return timestamp

    def tick(self, entry: DeviceEntry) -> Optional[Envelope]:
        """Produce and publish one reading. Failures are logged, never raised."""
        config = entry.config
        try:
            reading = self.synthesizer.synthesize(config, self._next_timestamp(entry))
            return self._process(entry, reading)
        except Exception:
            logger.exception(f"Tick failed for device {config.id}")
            return None

    def ingest(self, reading: Reading) -> Envelope:
        """
        Publish an externally produced reading for a registered device.

        The reading must match the device type and be newer than anything
        already published for that device.
        """
        entry = self.registry.get(reading.device_id)
        if reading.device_type != entry.config.type:
            raise ReadingTypeMismatchError(reading.device_id, entry.config.type.value, reading.device_type.value)
        if entry.last_timestamp is not None and reading.timestamp <= entry.last_timestamp:
            raise StaleReadingError(reading.device_id, reading.timestamp, entry.last_timestamp)
        return self._process(entry, reading)

    def _process(self, entry: DeviceEntry, reading: Reading) -> Envelope:
        alerts = self.engine.evaluate(reading, entry.config.type)
        envelope = Envelope(reading=reading, alerts=alerts)

        entry.last_timestamp = reading.timestamp
        entry.last_reading = reading

        self.hub.publish(envelope)
        if alerts and self.alert_sink is not None:
            self.alert_sink.offer(alerts)

        if alerts or reading.quality == Quality.POOR:
            logger.info(f"Device {reading.device_id}: {len(alerts)} alerts, quality: {reading.quality.value}")
        return envelope

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, device_id: str) -> DeviceStatus:
        entry = self.registry.get(device_id)
        config, reading = entry.config, entry.last_reading
        return DeviceStatus(
            id=config.id,
            type=config.type,
            location=config.location.name,
            is_online=config.is_active,
            last_reading=reading.timestamp if reading else None,
            battery_level=reading.battery_level if reading else None,
            signal_strength=reading.signal_strength if reading else None,
            quality=reading.quality if reading else None,
            next_service=config.last_service + timedelta(days=SERVICE_PERIOD_DAYS),
        )

    def statuses(self) -> List[DeviceStatus]:
        return [self.status(entry.config.id) for entry in self.registry]

    def topology(self) -> NetworkTopology:
        total = len(self.registry)
        online = sum(1 for config in self.registry.configs() if config.is_active)
        return NetworkTopology(
            total_devices=total,
            online_devices=online,
            network_health=(online / total * 100) if total else 0.0,
            data_transmission_rate=online * KBPS_PER_DEVICE,
            last_network_update=self.clock(),
        )

    def history(self, device_id: str, hours: float = 24) -> List[Reading]:
        config = self.registry.config(device_id)
        return self.synthesizer.history(config, hours, end=self.clock())
