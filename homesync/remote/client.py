"""
Remote device API client.

Talks to the remote device directory over HTTP(S) with aiohttp:
- GET /                          device list
- GET /{id}                      single device
- GET /{id}/characteristics/{n}  single characteristic
- PATCH /{id}                    partial update

When auth is enabled, a client-credentials token is fetched from the issuer
(POST {issuer}oauth/token) and sent as the Authorization header.

Every call resolves to decoded JSON or a RemoteError; nothing on the wire
raises out of this module.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional, Union

import aiohttp

from ..config import AuthConfig, RemoteApiConfig
from ..errors import ConfigurationError
from ..models import AuthToken, RemoteError, now_ms
from .tokens import TokenCache

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(
    r"^(https?://)?"                                    # protocol
    r"((?:[a-z\d](?:[a-z\d-]*[a-z\d])?\.)+[a-z]{2,}|"   # domain name
    r"localhost|"                                       # or localhost
    r"((\d{1,3}\.){3}\d{1,3}))"                         # or IPv4 address
    r"(:\d+)?(/[-a-z\d%_.~+]*)*"                        # port and path
    r"(\?[;&a-z\d%_.~+=-]*)?"                           # query string
    r"(#[-a-z\d_]*)?$",                                 # fragment
    re.IGNORECASE,
)


def valid_url(url: Optional[str]) -> bool:
    """Syntactic check of a base URL; never touches the network."""
    if not url or not isinstance(url, str):
        return False
    return bool(_URL_PATTERN.match(url))


JsonResult = Union[Any, RemoteError]


class RemoteAPIClient:
    """
    Client for the remote device directory.

    Raises ConfigurationError at construction if the base URL is malformed,
    so a misconfigured client never reaches the network.
    """

    def __init__(
        self,
        config: RemoteApiConfig,
        auth: Optional[AuthConfig] = None,
        tokens: Optional[TokenCache] = None,
    ):
        if not valid_url(config.url):
            raise ConfigurationError(f"Invalid Remote API URL - {config.url}", setting="remote.url")

        self.config = config
        self.auth = auth or AuthConfig()
        self.tokens = tokens or TokenCache()
        self._session: Optional[aiohttp.ClientSession] = None

        if self.auth.enabled and not valid_url(self.auth.issuer):
            raise ConfigurationError(f"Invalid token issuer URL - {self.auth.issuer}", setting="auth.issuer")

        # Only meaningful for https URLs
        self._ssl: Optional[bool] = None
        if not config.reject_invalid_cert and config.url.lower().startswith("https"):
            self._ssl = False
            logger.warning(
                f"TLS certificate validation is DISABLED for {config.display_name} "
                f"({config.url}); invalid or self-signed certificates will be accepted"
            )

    @property
    def display_name(self) -> str:
        return self.config.display_name

    def _url(self, path: Any) -> str:
        base = self.config.url
        path = str(path) if path is not None else ""
        return base + path if base.endswith("/") else f"{base}/{path}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def call(
        self,
        method: str,
        path: Any = "",
        body: Optional[Dict[str, Any]] = None,
    ) -> JsonResult:
        """
        Issue an authenticated call to the remote directory.

        Args:
            method: HTTP method (GET, PATCH, POST, ...)
            path: Path relative to the base URL (device id, "", ...)
            body: JSON body for POST/PATCH

        Returns:
            Decoded JSON, or RemoteError on any failure
        """
        method = method.upper()
        headers = {"content-type": "application/json"}

        if self.auth.enabled:
            token = await self.tokens.ensure_valid(self.fetch_token)
            if not token.valid:
                message = f"No valid {self.display_name} JWT to call remote API"
                logger.error(message)
                return RemoteError(message)
            headers["authorization"] = token.authorization

        kwargs: Dict[str, Any] = {"headers": headers}
        if self._ssl is not None:
            kwargs["ssl"] = self._ssl
        if method in ("POST", "PATCH", "PUT") and body is not None:
            kwargs["data"] = json.dumps(body)

        url = self._url(path)
        logger.debug(f"{method} {url} {body or ''}")

        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as resp:
                if not 200 <= resp.status < 300:
                    logger.error(f"{self.display_name} {method} Failure: {resp.status}")
                    return RemoteError(str(resp.status))
                return await resp.json(content_type=None)
        except asyncio.TimeoutError:
            logger.error(f"{self.display_name} {method} Failure: timed out after {self.config.timeout_seconds}s")
            return RemoteError("timeout")
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"{self.display_name} {method} Failure: {e}")
            return RemoteError(str(e) or type(e).__name__)

    async def fetch_token(self) -> AuthToken:
        """
        Fetch a client-credentials token from the issuer.

        On success the cache holds the new token. On any failure the cached
        token is only marked invalid; its other fields are left as they were.
        """
        url = f"{self.auth.issuer}oauth/token"
        payload = {
            "client_id": self.auth.client_id,
            "client_secret": self.auth.client_secret,
            "audience": self.auth.audience,
            "grant_type": "client_credentials",
        }

        try:
            session = await self._get_session()
            async with session.post(
                url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise ValueError(f"issuer answered {resp.status}")
                data = await resp.json(content_type=None)

            token = AuthToken(
                access_token=str(data["access_token"]),
                token_type=str(data["token_type"]),
                expires_at_epoch_ms=now_ms() + int(float(data["expires_in"]) * 1000),
                scope=str(data.get("scope", "")),
                fetched=True,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError, OverflowError) as e:
            logger.error(f"{self.display_name} JWT Fetch Failure: {e or type(e).__name__}")
            self.tokens.invalidate()
            return self.tokens.token

        logger.info(f"{self.display_name} JWT Fetch Success")
        self.tokens.store(token)
        return token
