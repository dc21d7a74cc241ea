"""
Exception taxonomy for HomeSync.

Exceptions are raised only where a subsystem cannot be built at all
(bad configuration). Anything that happens on the wire is reported as a
value instead, see ``homesync.models.RemoteError``.
"""

from typing import Any, Optional


class HomeSyncError(Exception):
    """Base exception for HomeSync errors."""

    def __init__(self, message: str, code: str = "HOMESYNC_ERROR"):
        super().__init__(message)
        self.code = code


class ConfigurationError(HomeSyncError):
    """Raised when a subsystem is configured with unusable settings."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(message, code="CONFIGURATION_ERROR")
        self.setting = setting


class ValidationError(HomeSyncError):
    """Raised when a value falls outside its capability rule."""

    def __init__(self, capability: str, value: Any):
        super().__init__(
            f"Invalid value for {capability}: {value!r}",
            code="VALIDATION_ERROR",
        )
        self.capability = capability
        self.value = value


class NotFoundError(HomeSyncError):
    """Raised when a device uuid or device type is unknown."""

    def __init__(self, what: str):
        super().__init__(f"Not found: {what}", code="NOT_FOUND")
        self.what = what
