"""
FastAPI server for the push listener (direct connect API).
"""

import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI

from ..config import ListenerConfig
from ..errors import ConfigurationError
from .auth import PushAuthorizer

logger = logging.getLogger(__name__)


def create_app(
    engine,
    display_name: str = "Remote API",
    authorizer: Optional[PushAuthorizer] = None,
) -> FastAPI:
    """Create the FastAPI application bound to a reconciliation engine."""
    from .routes import router

    app = FastAPI(
        title="HomeSync Direct Connect API",
        description="Push ingestion for remote device state",
        version="1.0.0",
    )
    app.state.engine = engine
    app.state.display_name = display_name
    app.state.authorizer = authorizer

    app.include_router(router)

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def check_tls_files(config: ListenerConfig) -> None:
    """
    Make sure the certificate and key files are readable.

    Raises:
        ConfigurationError: If either file is missing or unreadable
    """
    for setting, path in (("listener.cert_path", config.cert_path), ("listener.key_path", config.key_path)):
        if not path or not os.access(path, os.R_OK):
            raise ConfigurationError(
                f"Direct Connect HTTPS file does not exist or unreadable: {path}",
                setting=setting,
            )


def build_server(app: FastAPI, config: ListenerConfig, host: str) -> uvicorn.Server:
    """
    Build (but do not start) the uvicorn server for the listener.

    Raises:
        ConfigurationError: If HTTPS is enabled and the TLS files are unusable
    """
    kwargs = {}
    if config.https:
        check_tls_files(config)
        kwargs["ssl_certfile"] = config.cert_path
        kwargs["ssl_keyfile"] = config.key_path

    uv_config = uvicorn.Config(
        app,
        host=host,
        port=config.port,
        log_level="info",
        **kwargs,
    )
    scheme = "https" if config.https else "http"
    logger.info(f"Direct Connect service configured at {scheme}://{host}:{config.port}")
    return uvicorn.Server(uv_config)
