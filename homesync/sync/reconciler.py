"""
Reconciliation engine.

Keeps the local accessory registry in step with the remote device
directory. One cycle:

1. Fetch the directory. On failure, stop: the registry is left exactly as
   it was.
2. For every device: refresh and rebuild the bridge of a known uuid, or
   create, bridge and register a new one. Unsupported device types are
   logged and get no bridge.
3. Retire every record whose uuid is not in the directory (set difference
   on uuid).

Registry mutation happens in one synchronous block after the fetch, so a
push lookup running on the same event loop never sees a half-applied
cycle.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..accessory import AccessoryBridge
from ..capabilities import profile_for
from ..models import AckMode, CycleResult, RemoteDevice, is_error
from ..registry.host import HostRegistry
from ..registry.records import AccessoryRecord

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Owns the uuid -> AccessoryRecord / AccessoryBridge registry."""

    def __init__(
        self,
        client,
        host: HostRegistry,
        ack_mode: AckMode = AckMode.OPTIMISTIC,
    ):
        self.client = client
        self.host = host
        self.ack_mode = ack_mode

        self._records: Dict[str, AccessoryRecord] = {}
        self._bridges: Dict[str, AccessoryBridge] = {}
        self._cycle_lock = asyncio.Lock()
        # Bridges dropped by a cycle while optimistic sets were still in flight
        self._draining: List[AccessoryBridge] = []
        self.last_result: Optional[CycleResult] = None

    @property
    def display_name(self) -> str:
        return getattr(self.client, "display_name", "Remote API")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_bridge(self, uuid: str) -> Optional[AccessoryBridge]:
        return self._bridges.get(uuid)

    def get_record(self, uuid: str) -> Optional[AccessoryRecord]:
        return self._records.get(uuid)

    def uuids(self) -> set:
        """Uuids of every record in the registry."""
        return set(self._records)

    def bridges(self) -> List[AccessoryBridge]:
        return list(self._bridges.values())

    def records(self) -> List[AccessoryRecord]:
        return list(self._records.values())

    def snapshot(self) -> dict:
        """Serialisable view of the registry, used for status and comparisons."""
        return {
            uuid: {
                **record.to_dict(),
                "bridged": uuid in self._bridges,
                "capabilities": sorted(
                    c.value for c in self._bridges[uuid].registered_capabilities()
                ) if uuid in self._bridges else [],
            }
            for uuid, record in sorted(self._records.items())
        }

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def restore_cached(self) -> int:
        """Load accessories the host restored from its own cache."""
        restored = 0
        for handle in self.host.restore_cached():
            if handle.uuid in self._records:
                continue
            self._records[handle.uuid] = AccessoryRecord.from_handle(handle)
            restored += 1
            logger.info(f"Restored Device ({handle.display_name}) from cache")
        return restored

    async def _fetch_directory(self):
        result = await self.client.call("GET", "")
        if is_error(result):
            return None, f"directory fetch failed: {result.errno}"
        if not isinstance(result, list):
            return None, "Invalid response from remote API: expected a device list"

        devices = []
        seen = set()
        try:
            for entry in result:
                device = RemoteDevice.from_dict(entry)
                if device.uuid in seen:
                    logger.warning(f"Duplicate uuid {device.uuid} in directory, keeping first entry")
                    continue
                seen.add(device.uuid)
                devices.append(device)
        except ValueError as e:
            return None, f"Invalid response from remote API: {e}"
        return devices, None

    async def reconcile(self) -> CycleResult:
        """Run one discovery cycle."""
        async with self._cycle_lock:
            devices, error = await self._fetch_directory()
            if devices is None:
                logger.error(f"Discovery from {self.display_name} aborted, registry unchanged: {error}")
                self.last_result = CycleResult(ok=False, error=error)
                return self.last_result

            # No awaits from here on
            result = self._apply(devices)
            self.last_result = result
            logger.info(
                f"Discovery from {self.display_name}: {len(result.added)} added, "
                f"{len(result.updated)} updated, {len(result.retired)} retired, "
                f"{len(result.unsupported)} unsupported"
            )
            return result

    def _apply(self, devices: List[RemoteDevice]) -> CycleResult:
        result = CycleResult(ok=True)

        for device in devices:
            supported = profile_for(device.type) is not None
            record = self._records.get(device.uuid)

            if record is not None:
                record.refresh(device)
                self._drop_bridge(device.uuid)
                if supported:
                    self._bridges[device.uuid] = AccessoryBridge(record, self.client, self.ack_mode)
                    logger.info(f"Restored Device ({device.name}) from {self.display_name}")
                else:
                    logger.warning(f"Device Type Not Supported ({device.name} | {device.type})")
                    result.unsupported.append(device.uuid)
                self.host.persist(record.handle)
                result.updated.append(device.uuid)
                continue

            if not supported:
                logger.warning(f"Device Type Not Supported ({device.name} | {device.type})")
                result.unsupported.append(device.uuid)
                continue

            handle = self.host.register(device.uuid, device.name)
            record = AccessoryRecord.from_device(device, handle)
            self._records[device.uuid] = record
            self._bridges[device.uuid] = AccessoryBridge(record, self.client, self.ack_mode)
            self.host.persist(handle)
            result.added.append(device.uuid)
            logger.info(f"Added New Device ({device.name} | {device.type}) from {self.display_name}")

        present = {device.uuid for device in devices}
        for uuid in sorted(set(self._records) - present):
            self.retire(uuid)
            result.retired.append(uuid)

        return result

    def _drop_bridge(self, uuid: str) -> None:
        bridge = self._bridges.pop(uuid, None)
        if bridge is not None:
            bridge.discard()
            if bridge.pending:
                self._draining.append(bridge)

    async def drain(self) -> None:
        """Wait for in-flight optimistic sets on current and dropped bridges."""
        bridges = self.bridges() + self._draining
        self._draining = []
        await asyncio.gather(*(b.drain() for b in bridges))

    def retire(self, uuid: str) -> None:
        """Remove a record and its bridge, and unregister it from the host."""
        record = self._records.pop(uuid, None)
        self._drop_bridge(uuid)
        self.host.unregister(uuid)
        if record is not None:
            logger.info(f"Deleted Device ({record.display_identity})")
