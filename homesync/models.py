"""
Data models for remote devices, tokens and call outcomes.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# Refresh the token this long before it actually expires
TOKEN_SAFETY_MARGIN_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RemoteError:
    """
    Error sentinel returned by every network-facing call.

    Remote failures (bad status, timeout, refused connection, undecodable
    body, no usable token) never raise; callers branch on this value.
    """
    errno: str

    def to_dict(self) -> dict:
        return {"errno": self.errno}


def is_error(result: Any) -> bool:
    """Check whether a remote call result is the error sentinel."""
    return isinstance(result, RemoteError)


@dataclass
class RemoteDevice:
    """A device as reported by the remote device directory."""
    id: Any
    uuid: str
    name: str
    type: str
    characteristics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteDevice":
        """
        Build a device from directory JSON.

        Raises:
            ValueError: If the payload is not an object or lacks an
                identity field.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Device entry is not an object: {data!r}")

        missing = [k for k in ("uuid", "type") if k not in data]
        if missing:
            raise ValueError(f"Device entry missing fields: {', '.join(missing)}")

        characteristics = data.get("characteristics") or {}
        if not isinstance(characteristics, dict):
            raise ValueError(f"Device {data['uuid']} has malformed characteristics")

        # id and name fall back to the uuid
        return cls(
            id=data.get("id", data["uuid"]),
            uuid=str(data["uuid"]),
            name=str(data.get("name", data["uuid"])),
            type=str(data["type"]),
            characteristics=dict(characteristics),
        )


@dataclass
class AuthToken:
    """
    Bearer token obtained from the token issuer.

    ``valid`` is computed: a token that was never fetched, whose last
    refresh failed, or that expires within the safety margin is not valid.
    """
    access_token: str = ""
    token_type: str = ""
    expires_at_epoch_ms: int = 0
    scope: str = ""
    fetched: bool = False

    @property
    def valid(self) -> bool:
        return self.fetched and self.expires_at_epoch_ms > now_ms() + TOKEN_SAFETY_MARGIN_MS

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"


class AckMode(str, Enum):
    """How a characteristic set is acknowledged back to the host."""
    OPTIMISTIC = "optimistic"    # Report success once the call is dispatched
    CONFIRMED = "confirmed"      # Wait for the remote side to accept it


class CharacteristicStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"      # Remote side did not answer usefully
    INVALID = "invalid"              # Remote answered with an out-of-schema value
    UNSUPPORTED = "unsupported"      # No handler registered for the capability


@dataclass
class CharacteristicResult:
    """Outcome of a host-initiated get or set."""
    status: CharacteristicStatus
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == CharacteristicStatus.OK

    @classmethod
    def success(cls, value: Any = None) -> "CharacteristicResult":
        return cls(status=CharacteristicStatus.OK, value=value)


@dataclass
class PushOutcome:
    """Result of applying a pushed capability map to one bridge."""
    applied: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)  # name -> (old, new)
    rejected: Dict[str, str] = field(default_factory=dict)             # name -> reason

    @property
    def changed(self) -> bool:
        return bool(self.applied)


@dataclass
class CycleResult:
    """Summary of one reconciliation cycle."""
    ok: bool
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    retired: List[str] = field(default_factory=list)
    unsupported: List[str] = field(default_factory=list)
    error: Optional[str] = None
