#!/usr/bin/env python3
"""
Simulator for a manually fed coastal monitoring device.

Registers an inactive device (so the backend never ticks it on its own) and
drives it from here:
- readings: one synthesized reading per frame, posted to /readings
- incidents: geo-tagged events scattered around the device inside frame
  windows, each with its own probability; clustered via /analytics/clusters
  once the run ends
"""

import argparse
import os
import random
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from blueguard.schemas import DeviceConfig, DeviceType, Location
from blueguard.synthesizer import ReadingSynthesizer


# Incident windows: (first_frame, last_frame, probability per frame)
INCIDENT_WINDOWS: List[Tuple[int, int, float]] = [
    (20, 60, 0.25),
    (100, 130, 0.4),
    (150, 170, 0.3),
]

INCIDENT_SPREAD_DEG = 0.02  # ~2km
PROGRESS_EVERY = 30


def incident_probability(frame: int, windows: List[Tuple[int, int, float]]) -> float:
    for first, last, probability in windows:
        if first <= frame <= last:
            return probability
    return 0.0


def scatter_incident(location: Location, timestamp: datetime, rng: random.Random) -> Dict[str, Any]:
    """A location event somewhere around the device."""
    return {
        "lat": round(location.lat + rng.uniform(-INCIDENT_SPREAD_DEG, INCIDENT_SPREAD_DEG), 6),
        "lon": round(location.lon + rng.uniform(-INCIDENT_SPREAD_DEG, INCIDENT_SPREAD_DEG), 6),
        "timestamp": timestamp.isoformat(),
    }


def build_device(args: argparse.Namespace, rng: random.Random) -> DeviceConfig:
    device_type = DeviceType(args.type)
    return DeviceConfig(
        id=args.device_id,
        type=device_type,
        location=Location(lat=args.lat, lon=args.lon, name=f"Simulated {device_type.value} {args.device_id}"),
        sampling_interval=args.interval,
        is_active=False,  # fed from here
        last_service=datetime.now(timezone.utc) - timedelta(days=rng.randint(0, 40)),
    )


@dataclass
class RunStats:
    frames: int = 0
    readings_sent: int = 0
    alerts_raised: int = 0
    incidents: List[Dict[str, Any]] = field(default_factory=list)


class BackendClient:
    """Thin wrapper over the backend's HTTP API with retrying transport."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        adapter = HTTPAdapter(max_retries=Retry(
            total=5,
            backoff_factor=1,  # 1, 2, 4, 8, 16 seconds
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=None,  # POSTs here are safe to repeat
        ))
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def post(self, path: str, payload: Any) -> Optional[requests.Response]:
        try:
            return self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            print(f"[ERROR] POST {path} failed: {e}")
            return None

    def wait_until_healthy(self, attempts: int = 30, delay: float = 2.0) -> bool:
        print(f"Waiting for backend at {self.base_url}...")
        for attempt in range(1, attempts + 1):
            try:
                if requests.get(f"{self.base_url}/health", timeout=5).ok:
                    print("Backend is ready!")
                    return True
            except requests.exceptions.RequestException:
                pass
            print(f"  Attempt {attempt}/{attempts}: backend not ready")
            time.sleep(delay)
        print("Backend did not become available in time.")
        return False

    def register(self, device: DeviceConfig) -> bool:
        """Register the device; a 409 means it is already there, which is fine."""
        response = self.post("/devices", device.model_dump(mode="json"))
        if response is None:
            return False
        if response.status_code == 409:
            print(f"Device {device.id} already registered")
            return True
        if not response.ok:
            print(f"[ERROR] Registration rejected ({response.status_code}): {response.text}")
            return False
        print(f"Registered device {device.id}")
        return True

    def send_reading(self, reading: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self.post("/readings", reading)
        if response is None or not response.ok:
            return None
        return response.json()

    def cluster(self, incidents: List[Dict[str, Any]], k: int) -> List[Dict[str, Any]]:
        response = self.post("/analytics/clusters", {"points": incidents, "k": k})
        if response is None or not response.ok:
            return []
        return response.json()


def print_summary(device: DeviceConfig, stats: RunStats, clusters: List[Dict[str, Any]]) -> None:
    rule = "=" * 60
    print(f"\n{rule}\nRun complete for {device.id} ({device.type.value})\n{rule}")
    print(f"Frames:    {stats.frames}")
    print(f"Readings:  {stats.readings_sent}")
    print(f"Alerts:    {stats.alerts_raised}")
    print(f"Incidents: {len(stats.incidents)}")
    for cluster in clusters:
        print(f"  {cluster['id']}: {cluster['point_count']} incidents within "
              f"{cluster['radius_km']:.2f} km, risk {cluster['risk_level']}")
    print(rule)


def run_simulation(client: BackendClient, device: DeviceConfig, args: argparse.Namespace, rng: random.Random) -> RunStats:
    """Feed one reading per sampling interval of simulated time."""
    stats = RunStats(frames=max(1, int(args.minutes * 60 / device.sampling_interval)))
    pause = device.sampling_interval / args.speed
    synthesizer = ReadingSynthesizer(rng)

    print(f"Feeding {device.id} for {stats.frames} frames, one every {pause:.2f}s")

    for frame in range(stats.frames):
        timestamp = datetime.now(timezone.utc)
        envelope = client.send_reading(synthesizer.synthesize(device, timestamp).model_dump(mode="json"))
        if envelope is not None:
            stats.readings_sent += 1
            for alert in envelope["alerts"]:
                stats.alerts_raised += 1
                print(f"[Frame {frame:4d}] ALERT ({alert['rule']['severity']}): {alert['message']}")

        if rng.random() < incident_probability(frame, INCIDENT_WINDOWS):
            incident = scatter_incident(device.location, timestamp, rng)
            stats.incidents.append(incident)
            print(f"[Frame {frame:4d}] Incident at ({incident['lat']:.4f}, {incident['lon']:.4f})")

        if frame and frame % PROGRESS_EVERY == 0:
            print(f"[Progress] {frame}/{stats.frames} frames, "
                  f"{stats.readings_sent} readings, {stats.alerts_raised} alerts")

        time.sleep(pause)

    return stats


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BlueGuard device simulator")
    parser.add_argument("--backend-url", default=os.environ.get("BACKEND_URL", "http://localhost:8000"),
                        help="Backend base URL (default: $BACKEND_URL or http://localhost:8000)")
    parser.add_argument("--device-id", default="sim_001", help="Device ID (default: sim_001)")
    parser.add_argument("--type", default=DeviceType.WAVE.value, choices=[t.value for t in DeviceType],
                        help="Device type (default: wave)")
    parser.add_argument("--lat", type=float, default=40.7000, help="Device latitude")
    parser.add_argument("--lon", type=float, default=-74.0200, help="Device longitude")
    parser.add_argument("--interval", type=float, default=5.0,
                        help="Seconds of simulated time between readings (default: 5)")
    parser.add_argument("--speed", type=float, default=1.0, help="Time multiplier (default: 1.0)")
    parser.add_argument("--minutes", type=float, default=3.0, help="Simulated minutes to run (default: 3)")
    parser.add_argument("--clusters", type=int, default=3,
                        help="Clusters to request for reported incidents (default: 3)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for repeatable runs")
    args = parser.parse_args(argv)
    if args.speed <= 0:
        parser.error("--speed must be greater than zero")
    if args.interval <= 0:
        parser.error("--interval must be greater than zero")
    if args.clusters < 1:
        parser.error("--clusters must be at least 1")
    return args


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    rng = random.Random(args.seed)
    client = BackendClient(args.backend_url)

    if not client.wait_until_healthy():
        sys.exit(1)

    device = build_device(args, rng)
    if not client.register(device):
        sys.exit(1)

    try:
        stats = run_simulation(client, device, args, rng)
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        sys.exit(0)

    clusters = client.cluster(stats.incidents, args.clusters) if stats.incidents else []
    print_summary(device, stats, clusters)


if __name__ == "__main__":
    main()
