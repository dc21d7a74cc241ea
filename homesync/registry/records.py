"""In-memory accessory records, one per synchronised remote device."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..models import RemoteDevice
from .host import AccessoryHandle

logger = logging.getLogger(__name__)


@dataclass
class AccessoryRecord:
    """Local projection of a RemoteDevice, bound to its host accessory."""
    uuid: str
    display_identity: str
    device_snapshot: Optional[RemoteDevice]
    handle: AccessoryHandle

    @classmethod
    def from_device(cls, device: RemoteDevice, handle: AccessoryHandle) -> "AccessoryRecord":
        record = cls(
            uuid=device.uuid,
            display_identity=device.name,
            device_snapshot=device,
            handle=handle,
        )
        record.refresh(device)
        return record

    @classmethod
    def from_handle(cls, handle: AccessoryHandle) -> "AccessoryRecord":
        """Rebuild a record from a cached host accessory."""
        snapshot = None
        cached = handle.context.get("device")
        if cached:
            try:
                snapshot = RemoteDevice.from_dict(cached)
            except ValueError as e:
                logger.warning(f"Cached accessory {handle.display_name} has an unreadable snapshot: {e}")
        return cls(
            uuid=handle.uuid,
            display_identity=handle.display_name,
            device_snapshot=snapshot,
            handle=handle,
        )

    def refresh(self, device: RemoteDevice) -> None:
        """Replace the snapshot and mirror it into the host context."""
        self.device_snapshot = device
        self.display_identity = device.name
        self.handle.display_name = device.name
        self.handle.context["device"] = device.to_dict()

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "display_identity": self.display_identity,
            "device": self.device_snapshot.to_dict() if self.device_snapshot else None,
        }
