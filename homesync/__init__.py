"""
HomeSync - remote device API bridge

Keeps a local accessory registry in step with a remote device directory,
bridges characteristic get/set calls to the remote API, and accepts pushed
state changes over a small HTTP listener.

Example:
    >>> from homesync import Platform, Config
    >>> platform = Platform(Config.load())
    >>> await platform.start()
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .platform import Platform

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "Platform",
]
