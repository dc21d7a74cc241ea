"""Remote device API client and token handling."""
from .client import RemoteAPIClient, valid_url
from .tokens import TokenCache

__all__ = ["RemoteAPIClient", "TokenCache", "valid_url"]
