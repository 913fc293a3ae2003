"""Rule-based alert evaluation for readings."""

import logging
from numbers import Real
from typing import Iterable, List, Optional

from .errors import MalformedReadingField
from .schemas import AlertEvent, AlertRule, Condition, DeviceType, Reading, Severity

logger = logging.getLogger(__name__)


DEFAULT_RULES: List[AlertRule] = [
    AlertRule(device_type=DeviceType.WAVE, field="height", max_value=4.0,
              condition=Condition.ABOVE, severity=Severity.HIGH),
    AlertRule(device_type=DeviceType.WAVE, field="height", max_value=6.0,
              condition=Condition.ABOVE, severity=Severity.CRITICAL),
    AlertRule(device_type=DeviceType.TIDE, field="level", min_value=-3.0, max_value=3.0,
              condition=Condition.OUTSIDE, severity=Severity.MEDIUM),
    AlertRule(device_type=DeviceType.WEATHER, field="wind_speed", max_value=25.0,
              condition=Condition.ABOVE, severity=Severity.MEDIUM),
    AlertRule(device_type=DeviceType.WEATHER, field="wind_speed", max_value=40.0,
              condition=Condition.ABOVE, severity=Severity.HIGH),
    AlertRule(device_type=DeviceType.SEISMIC, field="magnitude", max_value=3.0,
              condition=Condition.ABOVE, severity=Severity.MEDIUM),
    AlertRule(device_type=DeviceType.WATER_QUALITY, field="ph", min_value=6.5, max_value=8.5,
              condition=Condition.OUTSIDE, severity=Severity.MEDIUM),
]


def check_rule(rule: AlertRule, value: float) -> Optional[str]:
    """Return the alert message if ``value`` violates ``rule``, else None."""
    if rule.condition == Condition.ABOVE:
        if value > rule.max_value:
            return f"{rule.field} ({value:.2f}) exceeds maximum threshold ({rule.max_value})"
    elif rule.condition == Condition.BELOW:
        if value < rule.min_value:
            return f"{rule.field} ({value:.2f}) below minimum threshold ({rule.min_value})"
    elif rule.condition == Condition.OUTSIDE:
        if value < rule.min_value or value > rule.max_value:
            return (
                f"{rule.field} ({value:.2f}) outside normal range "
                f"({rule.min_value}-{rule.max_value})"
            )
    return None


class ThresholdEngine:
    """Evaluates readings against a fixed set of rules."""

    def __init__(self, rules: Optional[Iterable[AlertRule]] = None):
        self.rules = tuple(DEFAULT_RULES if rules is None else rules)

    def rules_for(self, device_type: DeviceType) -> List[AlertRule]:
        return [rule for rule in self.rules if rule.device_type == device_type]

    def evaluate(self, reading: Reading, device_type: Optional[DeviceType] = None) -> List[AlertEvent]:
        """
        Check a reading against every rule for its device type.

        Each violated rule yields its own event, so overlapping rules on the
        same field can fire together.
        """
        device_type = device_type or reading.device_type
        alerts: List[AlertEvent] = []

        for rule in self.rules_for(device_type):
            value = reading.value_of(rule.field)
            if isinstance(value, bool) or not isinstance(value, Real):
                logger.debug(str(MalformedReadingField(reading.device_id, rule.field)))
                continue

            message = check_rule(rule, float(value))
            if message:
                alerts.append(AlertEvent(
                    device_id=reading.device_id,
                    timestamp=reading.timestamp,
                    field=rule.field,
                    value=float(value),
                    rule=rule,
                    message=message,
                ))

        return alerts
