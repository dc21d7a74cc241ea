"""
Configuration management for HomeSync.

Handles:
- Remote device API location and TLS posture
- Token issuer credentials
- Push listener (direct connect API) address and TLS files
- Set acknowledgement mode
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .models import AckMode

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".homesync"

DEFAULT_LISTENER_PORT = 51828
DEFAULT_TIMEOUT_SECONDS = 10.0


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    # Filter to only known fields to handle config evolution
    known_fields = {f for f in cls.__dataclass_fields__}
    return {k: v for k, v in (data or {}).items() if k in known_fields}


@dataclass
class RemoteApiConfig:
    """Where the remote device directory lives."""
    url: str = ""
    display_name: str = "Remote API"
    reject_invalid_cert: bool = True
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteApiConfig":
        return cls(**_known(cls, data))


@dataclass
class AuthConfig:
    """Client-credentials settings shared by the remote client and the listener."""
    enabled: bool = False
    issuer: str = ""            # e.g. https://tenant.auth0.com/ (trailing slash)
    audience: str = ""
    client_id: str = ""
    client_secret: str = ""
    required_scope: str = "write:api"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}.well-known/jwks.json"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuthConfig":
        return cls(**_known(cls, data))


@dataclass
class ListenerConfig:
    """Configuration for the push ingestion listener."""
    host: Optional[str] = None      # None = first non-internal IPv4 address
    port: int = DEFAULT_LISTENER_PORT
    https: bool = False
    cert_path: Optional[str] = None
    key_path: Optional[str] = None
    enabled: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ListenerConfig":
        return cls(**_known(cls, data))


@dataclass
class Config:
    """
    Main HomeSync configuration.

    Stored at ~/.homesync/config.json
    """
    remote: RemoteApiConfig = field(default_factory=RemoteApiConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    listener: ListenerConfig = field(default_factory=ListenerConfig)
    ack_mode: AckMode = AckMode.OPTIMISTIC

    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def accessories_path(self) -> Path:
        return self.data_dir / "accessories.json"

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self, mask_secrets: bool = False) -> dict:
        auth = self.auth.to_dict()
        if mask_secrets and auth.get("client_secret"):
            auth["client_secret"] = "********"
        return {
            "remote": self.remote.to_dict(),
            "auth": auth,
            "listener": self.listener.to_dict(),
            "ack_mode": self.ack_mode.value,
        }

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        with open(self.config_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def from_dict(cls, data: dict, data_dir: Optional[Path] = None) -> "Config":
        try:
            ack_mode = AckMode(data.get("ack_mode", AckMode.OPTIMISTIC.value))
        except ValueError:
            logger.warning(f"Unknown ack_mode {data.get('ack_mode')!r}, using optimistic")
            ack_mode = AckMode.OPTIMISTIC

        return cls(
            remote=RemoteApiConfig.from_dict(data.get("remote", {})),
            auth=AuthConfig.from_dict(data.get("auth", {})),
            listener=ListenerConfig.from_dict(data.get("listener", {})),
            ack_mode=ack_mode,
            data_dir=data_dir or DEFAULT_DATA_DIR,
        )

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        config_path = data_dir / "config.json"

        if not config_path.exists():
            return cls(data_dir=data_dir)

        with open(config_path, "r") as f:
            data = json.load(f)

        return cls.from_dict(data, data_dir=data_dir)

    @classmethod
    def exists(cls, data_dir: Optional[Path] = None) -> bool:
        """Check if configuration exists."""
        data_dir = data_dir or DEFAULT_DATA_DIR
        return (data_dir / "config.json").exists()


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
