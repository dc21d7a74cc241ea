"""Accessory registry module."""
from .host import (
    AccessoryHandle,
    CharacteristicHandlers,
    HostRegistry,
    JsonHostRegistry,
)
from .records import AccessoryRecord

__all__ = [
    "AccessoryHandle",
    "AccessoryRecord",
    "CharacteristicHandlers",
    "HostRegistry",
    "JsonHostRegistry",
]
