"""BlueGuard coastal telemetry and spatial risk analytics core."""

__version__ = "1.0.0"
