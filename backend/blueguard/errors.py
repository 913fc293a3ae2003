"""Exception types for the telemetry and analytics core."""


class BlueGuardError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BlueGuardError):
    """A device registration or reconfiguration request was rejected."""


class DuplicateDeviceError(ConfigurationError):
    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id} is already registered")
        self.device_id = device_id


class UnknownDeviceError(ConfigurationError):
    def __init__(self, device_id: str):
        super().__init__(f"Device {device_id} is not registered")
        self.device_id = device_id


class InvalidIntervalError(ConfigurationError):
    def __init__(self, interval: float):
        super().__init__(f"Sampling interval must be greater than zero, got {interval}")
        self.interval = interval


class EmptyInputError(BlueGuardError):
    """Analytics were asked to work on nothing. Callers get an empty result instead."""


class MalformedReadingField(BlueGuardError):
    """A threshold rule names a field the reading does not carry as a number."""

    def __init__(self, device_id: str, field_name: str):
        super().__init__(f"Reading from {device_id} has no numeric field '{field_name}'")
        self.device_id = device_id
        self.field_name = field_name


class SubscriberDeliveryFailure(BlueGuardError):
    """A single subscriber could not accept a message (closed or full)."""


class StaleReadingError(ConfigurationError):
    """A manually ingested reading is not newer than the device's latest one."""

    def __init__(self, device_id: str, timestamp, latest):
        super().__init__(
            f"Reading for {device_id} at {timestamp.isoformat()} is not newer than {latest.isoformat()}"
        )
        self.device_id = device_id
        self.timestamp = timestamp
        self.latest = latest


class ReadingTypeMismatchError(ConfigurationError):
    def __init__(self, device_id: str, expected: str, actual: str):
        super().__init__(f"Device {device_id} is a {expected} device, got a {actual} reading")
        self.device_id = device_id
        self.expected = expected
        self.actual = actual
