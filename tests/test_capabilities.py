"""
Tests for capability rules and device profiles.
"""

import pytest

from homesync.capabilities import (
    CAPABILITY_RULES,
    Capability,
    DeviceType,
    ReadStyle,
    ValueKind,
    is_valid,
    profile_for,
    rule_for,
    validate,
)
from homesync.errors import ValidationError


class TestRangeRules:
    """Tests for bounded-range capabilities."""

    @pytest.mark.parametrize("value", [0, 1, 50, 99.5, 100, 100.0])
    def test_brightness_in_range(self, value):
        assert is_valid("Brightness", value)

    @pytest.mark.parametrize("value", [100.0001, -1, -0.0001, 101, True, False, "50", None, [50]])
    def test_brightness_out_of_range_or_wrong_type(self, value):
        assert not is_valid("Brightness", value)

    def test_nan_rejected(self):
        assert not is_valid("brightness", float("nan"))

    def test_wire_name_and_characteristic_name_agree(self):
        assert is_valid("brightness", 40) == is_valid("Brightness", 40) is True
        assert is_valid(Capability.BRIGHTNESS, 40)

    def test_door_states(self):
        assert is_valid("stateTarget", 0)
        assert is_valid("stateTarget", 1)
        assert not is_valid("stateTarget", 2)
        assert is_valid("CurrentDoorState", 4)
        assert not is_valid("CurrentDoorState", 5)

    def test_colour_temperature_bounds(self):
        assert is_valid("colour", 140)
        assert is_valid("ColorTemperature", 500)
        assert not is_valid("colour", 139)

    def test_validate_raises(self):
        assert validate("hue", 360) == 360
        with pytest.raises(ValidationError) as exc:
            validate("Hue", 361)
        assert exc.value.capability == "hue"
        assert exc.value.code == "VALIDATION_ERROR"


class TestBooleanRules:
    """Tests for boolean capabilities."""

    def test_booleans_accepted(self):
        assert is_valid("On", True)
        assert is_valid("on", False)
        assert is_valid("obstruction", True)

    @pytest.mark.parametrize("value", [1, 0, "true", None, 1.0])
    def test_non_booleans_rejected(self, value):
        assert not is_valid("On", value)


class TestCapabilityLookup:
    """Tests for capability name resolution."""

    def test_unknown_capability_is_invalid(self):
        assert not is_valid("Temperature", 20)
        assert not is_valid("", True)
        assert not is_valid(None, True)

    def test_parse_aliases(self):
        assert Capability.parse("ColorTemperature") == Capability.COLOUR
        assert Capability.parse("ON") == Capability.ON
        assert Capability.parse("stateactual") == Capability.CURRENT_DOOR_STATE
        assert Capability.parse("nope") is None
        assert Capability.parse(42) is None

    def test_every_capability_has_a_rule(self):
        for cap in Capability:
            rule = rule_for(cap)
            assert rule is not None
            if rule.value_kind == ValueKind.RANGE:
                assert rule.low <= rule.high

    def test_read_only_door_state(self):
        rule = CAPABILITY_RULES[Capability.CURRENT_DOOR_STATE]
        assert rule.supports_get
        assert not rule.supports_set


class TestDeviceProfiles:
    """Tests for device type profiles."""

    def test_known_types(self):
        assert profile_for("Lightbulb").device_type == DeviceType.LIGHT
        assert profile_for("Light").device_type == DeviceType.LIGHT
        assert profile_for("Garage Door Opener").device_type == DeviceType.DOOR_OPENER
        assert profile_for("DoorOpener").device_type == DeviceType.DOOR_OPENER

    def test_unknown_type(self):
        assert profile_for("Thermostat") is None
        assert profile_for(None) is None

    def test_profiles_differ_only_in_data(self):
        light = profile_for(DeviceType.LIGHT)
        door = profile_for(DeviceType.DOOR_OPENER)
        assert light.read_style == ReadStyle.CHARACTERISTIC
        assert door.read_style == ReadStyle.DEVICE
        assert Capability.ON in light.capabilities
        assert Capability.ON not in door.capabilities

    def test_door_labels(self):
        door = profile_for(DeviceType.DOOR_OPENER)
        assert door.describe(0) == "Open"
        assert door.describe(4) == "Stopped"
        assert door.describe(True) == "True"
