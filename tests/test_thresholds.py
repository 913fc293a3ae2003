"""Tests for threshold rule evaluation."""

import pytest
from pydantic import ValidationError

from blueguard.schemas import (
    AlertRule,
    Condition,
    DeviceType,
    MarineLifeData,
    Severity,
    TideData,
    WaveData,
)
from blueguard.thresholds import DEFAULT_RULES, ThresholdEngine, check_rule

HIGH_WAVE = AlertRule(device_type=DeviceType.WAVE, field="height", max_value=4.0,
                      condition=Condition.ABOVE, severity=Severity.HIGH)
TIDE_RANGE = AlertRule(device_type=DeviceType.TIDE, field="level", min_value=-3, max_value=3,
                       condition=Condition.OUTSIDE, severity=Severity.MEDIUM)


def wave(height):
    return WaveData(height=height, period=9.0, direction=180.0, energy=50.0)


def tide(level):
    return TideData(level=level, flow=0.1, temperature=20.0)


class TestAbove:
    def test_exceeding_value_raises_one_alert(self, make_reading):
        alerts = ThresholdEngine([HIGH_WAVE]).evaluate(make_reading(wave(4.5)))

        assert len(alerts) == 1
        assert alerts[0].severity == Severity.HIGH
        assert alerts[0].field == "height"
        assert alerts[0].value == 4.5
        assert alerts[0].rule == HIGH_WAVE

    def test_value_under_threshold_is_quiet(self, make_reading):
        assert ThresholdEngine([HIGH_WAVE]).evaluate(make_reading(wave(3.9))) == []

    def test_boundary_does_not_trigger(self, make_reading):
        assert ThresholdEngine([HIGH_WAVE]).evaluate(make_reading(wave(4.0))) == []

    def test_message_names_value_and_threshold(self, make_reading):
        alert = ThresholdEngine([HIGH_WAVE]).evaluate(make_reading(wave(4.5)))[0]
        assert alert.message == "height (4.50) exceeds maximum threshold (4.0)"


class TestOutside:
    @pytest.mark.parametrize("level", [5, -5])
    def test_out_of_range_triggers(self, make_reading, level):
        alerts = ThresholdEngine([TIDE_RANGE]).evaluate(make_reading(tide(level), device_id="tide_001"))
        assert len(alerts) == 1
        assert "outside normal range (-3.0-3.0)" in alerts[0].message

    def test_in_range_is_quiet(self, make_reading):
        assert ThresholdEngine([TIDE_RANGE]).evaluate(make_reading(tide(0), device_id="tide_001")) == []


class TestBelow:
    def test_below_minimum_triggers(self):
        rule = AlertRule(device_type=DeviceType.TIDE, field="level", min_value=-1.0,
                         condition=Condition.BELOW, severity=Severity.LOW)
        assert check_rule(rule, -1.5) == "level (-1.50) below minimum threshold (-1.0)"
        assert check_rule(rule, -0.5) is None

    def test_zero_bound_is_honoured(self):
        rule = AlertRule(device_type=DeviceType.TIDE, field="level", min_value=0.0,
                         condition=Condition.BELOW, severity=Severity.LOW)
        assert check_rule(rule, -0.1) is not None


class TestDefaultRules:
    def test_high_and_critical_fire_independently(self, make_reading):
        alerts = ThresholdEngine().evaluate(make_reading(wave(6.5)))
        assert sorted(a.severity.value for a in alerts) == ["critical", "high"]

    def test_only_rules_for_the_device_type_apply(self, make_reading):
        engine = ThresholdEngine()
        # A wave reading never trips the tide or water rules
        alerts = engine.evaluate(make_reading(wave(4.5)))
        assert {a.rule.device_type for a in alerts} == {DeviceType.WAVE}
        assert len(engine.rules_for(DeviceType.WEATHER)) == 2

    def test_default_rule_set(self):
        assert len(DEFAULT_RULES) == 7


class TestFieldLookup:
    def test_absent_field_is_skipped(self, make_reading):
        rule = AlertRule(device_type=DeviceType.WAVE, field="salinity", max_value=1.0,
                         condition=Condition.ABOVE, severity=Severity.LOW)
        assert ThresholdEngine([rule]).evaluate(make_reading(wave(9.0))) == []

    def test_boolean_field_is_not_numeric(self, make_reading):
        rule = AlertRule(device_type=DeviceType.MARINE_LIFE, field="migration_indicator", max_value=0.5,
                         condition=Condition.ABOVE, severity=Severity.LOW)
        data = MarineLifeData(fish_count=10, avg_fish_size=12.0, species_count=3,
                              migration_indicator=True, biomass_index=40.0)
        assert ThresholdEngine([rule]).evaluate(make_reading(data, device_id="fish")) == []

    def test_integer_field_is_numeric(self, make_reading):
        rule = AlertRule(device_type=DeviceType.MARINE_LIFE, field="fish_count", max_value=5,
                         condition=Condition.ABOVE, severity=Severity.LOW)
        data = MarineLifeData(fish_count=10, avg_fish_size=12.0, species_count=3,
                              migration_indicator=False, biomass_index=40.0)
        assert len(ThresholdEngine([rule]).evaluate(make_reading(data, device_id="fish"))) == 1

    def test_kind_tag_is_not_a_field(self, make_reading):
        assert make_reading(wave(1.0)).value_of("kind") is None
        assert make_reading(wave(1.0)).value_of("model_dump") is None


class TestRuleValidation:
    def test_above_needs_max(self):
        with pytest.raises(ValidationError):
            AlertRule(device_type=DeviceType.WAVE, field="height", min_value=1.0,
                      condition=Condition.ABOVE, severity=Severity.LOW)

    def test_below_needs_min(self):
        with pytest.raises(ValidationError):
            AlertRule(device_type=DeviceType.WAVE, field="height", max_value=1.0,
                      condition=Condition.BELOW, severity=Severity.LOW)

    def test_outside_needs_both_bounds(self):
        with pytest.raises(ValidationError):
            AlertRule(device_type=DeviceType.TIDE, field="level", max_value=3.0,
                      condition=Condition.OUTSIDE, severity=Severity.LOW)
