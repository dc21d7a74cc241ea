"""
HomeSync platform.

Wires the pieces together and runs the startup sequence:

    restore cached accessories -> discovery cycle -> start push listener

A ConfigurationError disables only the subsystem it belongs to: a bad
remote URL disables synchronisation, unreadable TLS files disable the
listener.
"""

import asyncio
import logging
from typing import Optional

from .api.auth import PushAuthorizer
from .api.server import build_server, create_app
from .config import Config, get_config
from .errors import ConfigurationError
from .models import CycleResult
from .network import get_ip_address
from .registry.host import HostRegistry, JsonHostRegistry
from .remote.client import RemoteAPIClient
from .sync.reconciler import ReconciliationEngine

logger = logging.getLogger(__name__)


class Platform:
    """
    HomeSync runtime.

    Manages all components:
    - Remote API client and token cache
    - Reconciliation engine and accessory bridges
    - Push listener
    """

    def __init__(self, config: Optional[Config] = None, host: Optional[HostRegistry] = None):
        self.config = config or get_config()
        self.host = host or JsonHostRegistry(self.config.accessories_path)

        self.client: Optional[RemoteAPIClient] = None
        self.engine: Optional[ReconciliationEngine] = None
        self.authorizer: Optional[PushAuthorizer] = None

        self._server = None
        self._server_task: Optional[asyncio.Task] = None

        display_name = self.config.remote.display_name
        try:
            self.client = RemoteAPIClient(self.config.remote, self.config.auth)
        except ConfigurationError as e:
            logger.error(f"{display_name} synchronisation disabled: {e}")
        else:
            self.engine = ReconciliationEngine(self.client, self.host, self.config.ack_mode)

        if self.config.auth.enabled:
            self.authorizer = PushAuthorizer.from_config(self.config.auth)

        logger.info(f"{display_name} platform initialized")

    @property
    def sync_enabled(self) -> bool:
        return self.engine is not None

    @property
    def listening(self) -> bool:
        return self._server_task is not None and not self._server_task.done()

    async def discover(self) -> Optional[CycleResult]:
        """Run one reconciliation cycle."""
        if self.engine is None:
            return None
        return await self.engine.reconcile()

    async def start(self) -> None:
        """Restore the cache, run discovery and start the listener."""
        if self.engine is None:
            logger.error("Nothing to synchronise, platform not started")
            return

        self.engine.restore_cached()
        await self.discover()
        self.start_listener()

    def start_listener(self) -> None:
        listener = self.config.listener
        if not listener.enabled or self.engine is None:
            return

        app = create_app(self.engine, self.config.remote.display_name, self.authorizer)
        host = listener.host or get_ip_address()
        try:
            self._server = build_server(app, listener, host)
        except ConfigurationError as e:
            logger.error(f"Direct Connect API disabled: {e}")
            return

        self._server_task = asyncio.ensure_future(self._server.serve())

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._server_task is not None:
            await self._server_task
            self._server_task = None
        if self.engine is not None:
            await self.engine.drain()
        if self.client is not None:
            await self.client.close()
        logger.info("Platform stopped")

    async def run_forever(self) -> None:
        """Start and serve until the listener exits."""
        await self.start()
        try:
            if self._server_task is not None:
                await self._server_task
        finally:
            await self.stop()

    def status(self) -> dict:
        return {
            "sync_enabled": self.sync_enabled,
            "listening": self.listening,
            "devices": len(self.engine.uuids()) if self.engine else 0,
            "bridges": len(self.engine.bridges()) if self.engine else 0,
        }
