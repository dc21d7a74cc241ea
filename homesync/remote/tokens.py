"""
Access token cache for the remote device API.

One TokenCache owns the current AuthToken. Only the cache replaces it, and
concurrent callers that find it invalid share a single in-flight refresh.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..models import AuthToken

logger = logging.getLogger(__name__)


class TokenCache:
    """Single-writer holder of the process AuthToken."""

    def __init__(self):
        self._token = AuthToken()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def token(self) -> AuthToken:
        return self._token

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def store(self, token: AuthToken) -> None:
        """Replace the cached token with a freshly issued one."""
        self._token = token

    def invalidate(self) -> None:
        """Mark the current token unusable, keeping its other fields."""
        self._token.fetched = False

    async def ensure_valid(self, fetch: Callable[[], Awaitable[AuthToken]]) -> AuthToken:
        """
        Return a valid token, refreshing it first if needed.

        If a refresh is already running, wait for that one instead of
        starting another. The returned token may still be invalid when the
        refresh failed; callers check ``token.valid``.
        """
        if self._token.valid:
            return self._token

        if self._inflight is None or self._inflight.done():
            logger.debug("Access token invalid or expiring, refreshing")
            self._inflight = asyncio.ensure_future(fetch())

        task = self._inflight
        try:
            # Shield so one cancelled waiter does not cancel the shared refresh
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None
