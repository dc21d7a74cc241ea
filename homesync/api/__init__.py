"""HomeSync push listener API."""
from .auth import AuthorizationError, PushAuthorizer
from .server import create_app

__all__ = ["AuthorizationError", "PushAuthorizer", "create_app"]
