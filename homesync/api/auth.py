"""
Bearer token authorization for the push listener.

Tokens are RS256 JWTs issued by the same issuer the remote client uses.
Signing keys come from the issuer's JWKS document
({issuer}.well-known/jwks.json); the token must carry the configured
audience, issuer and scope.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import jwt
from jwt import PyJWKClient

from ..config import AuthConfig

logger = logging.getLogger(__name__)

ALGORITHMS = ["RS256"]


class AuthorizationError(Exception):
    """Raised when a push request is not authorized."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class PushAuthorizer:
    """
    Verifies the Authorization header of push requests.

    Args:
        issuer: Token issuer URL, with trailing slash
        audience: Expected audience claim
        scope: Scope the token must grant
        key_resolver: Callable mapping a raw token to its verification key;
            defaults to a cached JWKS lookup against `jwks_uri`
        jwks_uri: Key set location, defaults to the issuer's well-known path
    """

    def __init__(
        self,
        issuer: str,
        audience: str,
        scope: str = "write:api",
        key_resolver: Optional[Callable[[str], Any]] = None,
        jwks_uri: Optional[str] = None,
    ):
        self.issuer = issuer
        self.audience = audience
        self.scope = scope
        self.jwks_uri = jwks_uri or AuthConfig(issuer=issuer).jwks_uri

        if key_resolver is None:
            jwks = PyJWKClient(self.jwks_uri, cache_keys=True)
            key_resolver = lambda token: jwks.get_signing_key_from_jwt(token).key
        self._key_resolver = key_resolver

    @classmethod
    def from_config(cls, auth: AuthConfig) -> "PushAuthorizer":
        return cls(
            issuer=auth.issuer,
            audience=auth.audience,
            scope=auth.required_scope,
            jwks_uri=auth.jwks_uri,
        )

    @staticmethod
    def _bearer(header: Optional[str]) -> str:
        if not header:
            raise AuthorizationError("No authorization token was found")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthorizationError("Format is Authorization: Bearer [token]")
        return token.strip()

    def _granted_scopes(self, claims: Dict[str, Any]) -> set:
        scopes = set()
        scope_claim = claims.get("scope")
        if isinstance(scope_claim, str):
            scopes.update(scope_claim.split())
        permissions = claims.get("permissions")
        if isinstance(permissions, list):
            scopes.update(str(p) for p in permissions)
        return scopes

    async def authorize(self, header: Optional[str]) -> Dict[str, Any]:
        """
        Verify a bearer token.

        Returns:
            The decoded claims

        Raises:
            AuthorizationError: 401 for missing/invalid tokens, 403 when the
                required scope is missing
        """
        token = self._bearer(header)

        try:
            # JWKS lookups are blocking HTTP calls
            key = await asyncio.to_thread(self._key_resolver, token)
            claims = jwt.decode(
                token,
                key,
                algorithms=ALGORITHMS,
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.PyJWTError as e:
            logger.debug(f"Push token rejected: {e}")
            raise AuthorizationError(f"Invalid token: {e}") from e

        if self.scope and self.scope not in self._granted_scopes(claims):
            raise AuthorizationError("Insufficient scope", status_code=403)

        return claims
