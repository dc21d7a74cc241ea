"""
Capability rules and device-type profiles.

Every capability a remote device can expose has one static rule that says
what kind of value it carries and which directions it supports. Device
types differ only in which capabilities they expose and in their display
metadata; the accessory bridge reads these tables and never branches on
device type.

Validation is used both ways:
- values pushed by the remote side before they reach the host
- values returned by remote reads before they are handed to the host
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import ValidationError


class ValueKind(str, Enum):
    BOOLEAN = "boolean"
    RANGE = "range"


class Capability(str, Enum):
    """
    Capabilities known to the bridge.

    The value is the name the remote directory uses on the wire.
    """
    ON = "on"
    BRIGHTNESS = "brightness"
    COLOUR = "colour"
    HUE = "hue"
    SATURATION = "saturation"
    TARGET_DOOR_STATE = "stateTarget"
    CURRENT_DOOR_STATE = "stateActual"
    OBSTRUCTION = "obstruction"

    @property
    def characteristic(self) -> str:
        """Name of the matching host characteristic."""
        return CHARACTERISTIC_NAMES[self]

    @classmethod
    def parse(cls, name: Any) -> Optional["Capability"]:
        """
        Resolve a wire name or host characteristic name, case-insensitively.

        Returns None for anything unknown.
        """
        if isinstance(name, Capability):
            return name
        if not isinstance(name, str):
            return None
        return _ALIASES.get(name.strip().lower())


CHARACTERISTIC_NAMES: Dict[Capability, str] = {
    Capability.ON: "On",
    Capability.BRIGHTNESS: "Brightness",
    Capability.COLOUR: "ColorTemperature",
    Capability.HUE: "Hue",
    Capability.SATURATION: "Saturation",
    Capability.TARGET_DOOR_STATE: "TargetDoorState",
    Capability.CURRENT_DOOR_STATE: "CurrentDoorState",
    Capability.OBSTRUCTION: "ObstructionDetected",
}

_ALIASES: Dict[str, Capability] = {}
for _cap in Capability:
    _ALIASES[_cap.value.lower()] = _cap
    _ALIASES[CHARACTERISTIC_NAMES[_cap].lower()] = _cap


@dataclass(frozen=True)
class CapabilityRule:
    """Static rule for one capability."""
    value_kind: ValueKind
    low: Optional[float] = None
    high: Optional[float] = None
    required: bool = False
    supports_get: bool = True
    supports_set: bool = True


CAPABILITY_RULES: Dict[Capability, CapabilityRule] = {
    # Lightbulb
    Capability.ON: CapabilityRule(ValueKind.BOOLEAN, required=True),
    Capability.BRIGHTNESS: CapabilityRule(ValueKind.RANGE, low=0, high=100),
    Capability.COLOUR: CapabilityRule(ValueKind.RANGE, low=140, high=500),
    Capability.HUE: CapabilityRule(ValueKind.RANGE, low=0, high=360),
    Capability.SATURATION: CapabilityRule(ValueKind.RANGE, low=0, high=100),

    # Garage door opener
    Capability.TARGET_DOOR_STATE: CapabilityRule(ValueKind.RANGE, low=0, high=1, required=True),
    Capability.CURRENT_DOOR_STATE: CapabilityRule(
        ValueKind.RANGE, low=0, high=4, required=True, supports_set=False
    ),
    Capability.OBSTRUCTION: CapabilityRule(ValueKind.BOOLEAN, required=True, supports_set=False),
}


def _is_boolean(rule: CapabilityRule, value: Any) -> bool:
    return type(value) is bool


def _in_range(rule: CapabilityRule, value: Any) -> bool:
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if value != value:  # NaN
        return False
    return rule.low <= value <= rule.high


VALIDATORS: Dict[ValueKind, Callable[[CapabilityRule, Any], bool]] = {
    ValueKind.BOOLEAN: _is_boolean,
    ValueKind.RANGE: _in_range,
}


def rule_for(capability: Any) -> Optional[CapabilityRule]:
    """Get the rule for a capability (enum member or any accepted name)."""
    cap = Capability.parse(capability)
    if cap is None:
        return None
    return CAPABILITY_RULES.get(cap)


def is_valid(capability_name: Any, value: Any) -> bool:
    """
    Check a value against its capability rule.

    Unknown capability names are never valid.
    """
    rule = rule_for(capability_name)
    if rule is None:
        return False
    return VALIDATORS[rule.value_kind](rule, value)


def validate(capability_name: Any, value: Any) -> Any:
    """
    Return the value if it satisfies its capability rule.

    Raises:
        ValidationError: If the value or the capability name is not valid
    """
    if not is_valid(capability_name, value):
        cap = Capability.parse(capability_name)
        raise ValidationError(cap.value if cap else str(capability_name), value)
    return value


# =============================================================================
# DEVICE TYPES
# =============================================================================

class DeviceType(str, Enum):
    """Device types, valued by the name the remote directory reports."""
    LIGHT = "Lightbulb"
    DOOR_OPENER = "Garage Door Opener"


class ReadStyle(str, Enum):
    CHARACTERISTIC = "characteristic"    # GET /{id}/characteristics/{name}
    DEVICE = "device"                    # GET /{id}


@dataclass(frozen=True)
class DeviceProfile:
    """Display metadata and capability set of a device type."""
    device_type: DeviceType
    manufacturer: str
    model: str
    capabilities: Tuple[Capability, ...]
    read_style: ReadStyle = ReadStyle.CHARACTERISTIC
    value_labels: Optional[Dict[Any, str]] = None

    def describe(self, value: Any) -> str:
        """Friendly rendering of a value for log lines."""
        if self.value_labels and not isinstance(value, bool) and value in self.value_labels:
            return self.value_labels[value]
        return str(value)


DEVICE_PROFILES: Dict[DeviceType, DeviceProfile] = {
    DeviceType.LIGHT: DeviceProfile(
        device_type=DeviceType.LIGHT,
        manufacturer="Home",
        model="Light",
        capabilities=(
            Capability.ON,
            Capability.BRIGHTNESS,
            Capability.COLOUR,
            Capability.HUE,
            Capability.SATURATION,
        ),
        read_style=ReadStyle.CHARACTERISTIC,
    ),
    DeviceType.DOOR_OPENER: DeviceProfile(
        device_type=DeviceType.DOOR_OPENER,
        manufacturer="Home",
        model="Garage Door",
        capabilities=(
            Capability.TARGET_DOOR_STATE,
            Capability.CURRENT_DOOR_STATE,
            Capability.OBSTRUCTION,
        ),
        read_style=ReadStyle.DEVICE,
        value_labels={0: "Open", 1: "Closed", 2: "Opening", 3: "Closing", 4: "Stopped"},
    ),
}

_TYPE_ALIASES: Dict[str, DeviceType] = {
    "lightbulb": DeviceType.LIGHT,
    "light": DeviceType.LIGHT,
    "garage door opener": DeviceType.DOOR_OPENER,
    "dooropener": DeviceType.DOOR_OPENER,
    "door opener": DeviceType.DOOR_OPENER,
}


def profile_for(device_type: Any) -> Optional[DeviceProfile]:
    """Look up the profile for a reported device type, or None if unsupported."""
    if isinstance(device_type, DeviceType):
        return DEVICE_PROFILES[device_type]
    if not isinstance(device_type, str):
        return None
    resolved = _TYPE_ALIASES.get(device_type.strip().lower())
    return DEVICE_PROFILES.get(resolved) if resolved else None
