"""
Host accessory registry.

The bridge host owns the persistent accessory objects and dispatches
characteristic get/set events to whatever handlers were registered on
them. HomeSync only talks to it through the HostRegistry protocol:

- register(uuid, display_name) -> AccessoryHandle
- unregister(uuid)
- restore_cached() -> list of AccessoryHandle
- persist(handle)

JsonHostRegistry is the standalone host used by the CLI; it keeps the
accessory cache in ~/.homesync/accessories.json.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from ..capabilities import Capability
from ..models import CharacteristicResult, CharacteristicStatus

logger = logging.getLogger(__name__)

GetHandler = Callable[[], Awaitable[CharacteristicResult]]
SetHandler = Callable[[Any], Awaitable[CharacteristicResult]]


@dataclass
class CharacteristicHandlers:
    """The (get, set) pair registered for one capability."""
    get: Optional[GetHandler] = None
    set: Optional[SetHandler] = None


@dataclass
class AccessoryHandle:
    """A host accessory: persistent identity and context plus runtime handlers."""
    uuid: str
    display_name: str
    context: Dict[str, Any] = field(default_factory=dict)
    info: Dict[str, str] = field(default_factory=dict)

    # Runtime state (not persisted)
    values: Dict[Capability, Any] = field(default_factory=dict)
    handlers: Dict[Capability, CharacteristicHandlers] = field(default_factory=dict)

    def set_info(self, **info: str) -> None:
        self.info.update({k: v for k, v in info.items() if v is not None})

    def register_handlers(
        self,
        capability: Capability,
        get: Optional[GetHandler] = None,
        set: Optional[SetHandler] = None,
    ) -> None:
        if get is None and set is None:
            return
        self.handlers[capability] = CharacteristicHandlers(get=get, set=set)

    def clear_handlers(self) -> None:
        self.handlers.clear()

    def registered_capabilities(self) -> List[Capability]:
        return list(self.handlers.keys())

    def update_characteristic(self, capability: Capability, value: Any) -> None:
        """Publish a new value for a characteristic to the host's clients."""
        self.values[capability] = value

    async def get(self, capability: Capability) -> CharacteristicResult:
        """Dispatch a host read to the registered get handler."""
        pair = self.handlers.get(capability)
        if pair is None or pair.get is None:
            return CharacteristicResult(
                status=CharacteristicStatus.UNSUPPORTED,
                error=f"{self.display_name} has no readable {capability.value}",
            )
        return await pair.get()

    async def set(self, capability: Capability, value: Any) -> CharacteristicResult:
        """Dispatch a host write to the registered set handler."""
        pair = self.handlers.get(capability)
        if pair is None or pair.set is None:
            return CharacteristicResult(
                status=CharacteristicStatus.UNSUPPORTED,
                error=f"{self.display_name} has no writable {capability.value}",
            )
        return await pair.set(value)

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "display_name": self.display_name,
            "context": self.context,
            "info": self.info,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccessoryHandle":
        return cls(
            uuid=data["uuid"],
            display_name=data.get("display_name", data["uuid"]),
            context=dict(data.get("context") or {}),
            info=dict(data.get("info") or {}),
        )


class HostRegistry(Protocol):
    """What the reconciliation engine needs from the bridge host."""

    def register(self, uuid: str, display_name: str) -> AccessoryHandle: ...

    def unregister(self, uuid: str) -> None: ...

    def restore_cached(self) -> List[AccessoryHandle]: ...

    def persist(self, handle: AccessoryHandle) -> None: ...


class JsonHostRegistry:
    """
    Host registry persisted to a JSON file.

    Stored in ~/.homesync/accessories.json unless a path is given.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else Path.home() / ".homesync" / "accessories.json"
        self.path.parent.mkdir(parents=True, exist_ok=True)

        self._handles: Dict[str, AccessoryHandle] = {}
        self._load()

    def _load(self):
        """Load cached accessories from disk."""
        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = json.load(f)
                    for uuid, handle_data in data.get("accessories", {}).items():
                        self._handles[uuid] = AccessoryHandle.from_dict(handle_data)
                logger.info(f"Loaded {len(self._handles)} accessories from cache")
            except (OSError, ValueError, KeyError) as e:
                logger.error(f"Failed to load accessory cache: {e}")

    def _save(self):
        """Save cached accessories to disk."""
        try:
            data = {
                "version": 1,
                "updated": time.time(),
                "accessories": {
                    uuid: handle.to_dict()
                    for uuid, handle in self._handles.items()
                },
            }
            with open(self.path, "w") as f:
                json.dump(data, f, indent=2, default=str)
            logger.debug(f"Saved {len(self._handles)} accessories to cache")
        except OSError as e:
            logger.error(f"Failed to save accessory cache: {e}")

    def register(self, uuid: str, display_name: str) -> AccessoryHandle:
        handle = self._handles.get(uuid)
        if handle is None:
            handle = AccessoryHandle(uuid=uuid, display_name=display_name)
            self._handles[uuid] = handle
        else:
            handle.display_name = display_name
        self._save()
        return handle

    def unregister(self, uuid: str) -> None:
        if self._handles.pop(uuid, None) is not None:
            self._save()

    def restore_cached(self) -> List[AccessoryHandle]:
        return list(self._handles.values())

    def persist(self, handle: AccessoryHandle) -> None:
        if handle.uuid in self._handles:
            self._save()

    def get(self, uuid: str) -> Optional[AccessoryHandle]:
        return self._handles.get(uuid)
