"""
Accessory bridge.

One AccessoryBridge adapts one remote device to its host accessory:
- host reads become remote point reads, validated before they are returned
- host writes become PATCH /{id} partial updates
- pushed state is validated and then published to the host

Everything device-specific comes from the capability tables in
``homesync.capabilities``; the bridge itself is the same for every type.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Dict, List, Mapping, Optional, Set

from .capabilities import (
    CAPABILITY_RULES,
    Capability,
    DeviceProfile,
    ReadStyle,
    is_valid,
    profile_for,
    validate,
)
from .errors import NotFoundError, ValidationError
from .models import (
    AckMode,
    CharacteristicResult,
    CharacteristicStatus,
    PushOutcome,
    is_error,
)
from .registry.records import AccessoryRecord

logger = logging.getLogger(__name__)

# Keys of a pushed payload that identify the device rather than set state
IDENTITY_FIELDS = frozenset({"uuid", "id", "name", "type"})


class AccessoryBridge:
    """
    Runtime adapter between one AccessoryRecord and the remote API.

    Handlers are registered on the record's host handle only for capabilities
    that the device type exposes AND the device reports in its
    characteristics.
    """

    def __init__(
        self,
        record: AccessoryRecord,
        client,
        ack_mode: AckMode = AckMode.OPTIMISTIC,
    ):
        device = record.device_snapshot
        profile = profile_for(device.type) if device else None
        if profile is None:
            raise NotFoundError(f"device type {device.type if device else None!r}")

        self.record = record
        self.client = client
        self.ack_mode = ack_mode
        self.profile: DeviceProfile = profile

        # capability -> key the remote used for it in `characteristics`
        self._present: Dict[Capability, str] = {}
        self._values: Dict[Capability, Any] = {}
        self._pending: Set[asyncio.Task] = set()

        self._register()

    @property
    def uuid(self) -> str:
        return self.record.uuid

    @property
    def name(self) -> str:
        return self.record.display_identity

    @property
    def device_id(self) -> Any:
        return self.record.device_snapshot.id

    def _register(self) -> None:
        device = self.record.device_snapshot
        handle = self.record.handle

        handle.clear_handlers()
        handle.set_info(
            manufacturer=self.profile.manufacturer,
            model=self.profile.model,
            serial_number=device.uuid,
            name=device.name,
        )

        for key in device.characteristics:
            cap = Capability.parse(key)
            if cap is None or cap not in self.profile.capabilities:
                logger.debug(f"({device.name}) ignoring characteristic {key!r} not exposed by {device.type}")
                continue
            self._present[cap] = key

        for cap in self.profile.capabilities:
            rule = CAPABILITY_RULES[cap]

            if cap not in self._present:
                if rule.required:
                    logger.warning(
                        f"({device.name} | {device.type}) required characteristic "
                        f"{cap.characteristic} missing from remote device"
                    )
                continue

            handle.register_handlers(
                cap,
                get=partial(self.handle_get, cap) if rule.supports_get else None,
                set=partial(self.handle_set, cap) if rule.supports_set else None,
            )

            value = device.characteristics[self._present[cap]]
            if is_valid(cap, value):
                self._values[cap] = value
                handle.update_characteristic(cap, value)
            else:
                logger.warning(f"({device.name} | {cap.characteristic}) initial value {value!r} is invalid, not published")

    def registered_capabilities(self) -> List[Capability]:
        return self.record.handle.registered_capabilities()

    def supports(self, capability: Capability) -> bool:
        return capability in self._present

    def value(self, capability: Any) -> Any:
        """Cached value of a capability, or None."""
        cap = Capability.parse(capability)
        return self._values.get(cap) if cap else None

    def snapshot(self) -> dict:
        return self.record.device_snapshot.to_dict()

    async def handle_get(self, capability: Capability) -> CharacteristicResult:
        """
        Read one capability from the remote side.

        Returns UNAVAILABLE when the remote call fails and INVALID when the
        remote answers with a value outside the capability rule.
        """
        pair = self.record.handle.handlers.get(capability)
        if pair is None or pair.get is None:
            return CharacteristicResult(
                status=CharacteristicStatus.UNSUPPORTED,
                error=f"{capability.value} not registered for {self.name}",
            )

        if self.profile.read_style == ReadStyle.CHARACTERISTIC:
            result = await self.client.call("GET", f"{self.device_id}/characteristics/{capability.value}")
        else:
            result = await self.client.call("GET", self.device_id)

        if is_error(result):
            logger.debug(f"({self.name} | {capability.characteristic}) unavailable: {result.errno}")
            return CharacteristicResult(status=CharacteristicStatus.UNAVAILABLE, error=result.errno)

        value = self._extract(result, capability)
        if not is_valid(capability, value):
            logger.warning(
                f"({self.name} | {capability.characteristic}) remote returned invalid value {value!r}"
            )
            return CharacteristicResult(
                status=CharacteristicStatus.INVALID,
                value=value,
                error=f"invalid value for {capability.value}",
            )

        logger.info(f"[Device Info]: ({self.name} | {capability.characteristic}) is {self.profile.describe(value)}")
        return CharacteristicResult.success(value)

    @staticmethod
    def _extract(result: Any, capability: Capability) -> Any:
        if not isinstance(result, dict):
            return None
        if capability.value in result:
            return result[capability.value]
        for key, value in result.items():
            if Capability.parse(key) == capability:
                return value
        characteristics = result.get("characteristics")
        if isinstance(characteristics, dict):
            return AccessoryBridge._extract(characteristics, capability)
        return None

    async def handle_set(self, capability: Capability, value: Any) -> CharacteristicResult:
        """
        Forward a host write to the remote side.

        The value is not validated here; the remote side decides. In
        optimistic mode success is reported as soon as the PATCH is
        dispatched; in confirmed mode the remote answer decides.
        """
        pair = self.record.handle.handlers.get(capability)
        if pair is None or pair.set is None:
            return CharacteristicResult(
                status=CharacteristicStatus.UNSUPPORTED,
                error=f"{capability.value} not writable on {self.name}",
            )

        body = {"id": self.device_id, capability.value: value}

        if self.ack_mode == AckMode.CONFIRMED:
            ok = await self._dispatch_set(capability, value, body)
            if not ok:
                return CharacteristicResult(
                    status=CharacteristicStatus.UNAVAILABLE,
                    error=f"remote rejected {capability.value}",
                )
            return CharacteristicResult.success(value)

        task = asyncio.ensure_future(self._dispatch_set(capability, value, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return CharacteristicResult.success(value)

    async def _dispatch_set(self, capability: Capability, value: Any, body: dict) -> bool:
        result = await self.client.call("PATCH", self.device_id, body)
        if is_error(result):
            logger.error(f"({self.name} | {capability.characteristic}) set to {value!r} failed: {result.errno}")
            return False
        logger.info(f"[Device Event]: ({self.name} | {capability.characteristic}) set to {self.profile.describe(value)}")
        return True

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for optimistic sets that are still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def push_update(self, capabilities: Mapping[str, Any]) -> PushOutcome:
        """
        Apply state pushed by the remote side.

        Each entry is checked on its own: valid entries update the cached
        value and the host characteristic, invalid ones are dropped.
        """
        outcome = PushOutcome()
        device = self.record.device_snapshot

        for name, value in capabilities.items():
            if name in IDENTITY_FIELDS:
                continue

            cap = Capability.parse(name)
            if cap is None or not self.supports(cap):
                logger.warning(f"({self.name}) push for unsupported characteristic {name!r} ignored")
                outcome.rejected[name] = "unsupported"
                continue

            try:
                validate(cap, value)
            except ValidationError as e:
                logger.warning(f"({self.name} | {cap.characteristic}) push rejected: {e}")
                outcome.rejected[name] = "invalid"
                continue

            old = self._values.get(cap)
            self._values[cap] = value
            device.characteristics[self._present[cap]] = value
            self.record.handle.update_characteristic(cap, value)
            outcome.applied[cap.value] = (old, value)

            logger.info(
                f"[Device Event]: ({self.name} | {cap.characteristic}) "
                f"{self.profile.describe(old)} -> {self.profile.describe(value)}"
            )

        if outcome.changed:
            self.record.handle.context["device"] = device.to_dict()

        return outcome

    def discard(self) -> None:
        """Detach from the host accessory."""
        self.record.handle.clear_handlers()

    def __repr__(self) -> str:
        caps = ", ".join(c.value for c in self.registered_capabilities())
        return f"AccessoryBridge({self.name!r}, {self.profile.device_type.value}, [{caps}])"
