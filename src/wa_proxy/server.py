# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

This module provides a pre-configured FastAPI application that reads
configuration from ``config.ini`` and ``WAP_*`` environment variables and
starts the WaProxy service with the application lifespan.

Usage:
    uvicorn wa_proxy.server:app --host 0.0.0.0 --port 8000

Environment variables:
    WAP_CONFIG: Path to the INI configuration file (default: config.ini).
    WAP_API_TOKEN: API authentication token.
    WAP_BRIDGE_URL: Base URL of the WhatsApp Web bridge.
    WAP_LOG_LEVEL: Logging level (default: INFO).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import create_app
from .config_loader import build_config, load_settings
from .logger import configure_logging
from .proxy import WaProxy

_logger = logging.getLogger(__name__)


def build_app(settings: dict[str, object] | None = None, proxy: WaProxy | None = None) -> FastAPI:
    """Create the FastAPI application and the proxy it serves."""
    settings = settings if settings is not None else load_settings()
    core = proxy or WaProxy(config=build_config(settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the proxy with the application and stop it on shutdown."""
        _logger.info("Starting wa-proxy service...")
        await core.start()
        _logger.info("wa-proxy service started")
        try:
            yield
        finally:
            _logger.info("Stopping wa-proxy service...")
            await core.stop()
            _logger.info("wa-proxy service stopped")

    return create_app(core, api_token=settings.get("api_token"), lifespan=lifespan)  # type: ignore[arg-type]


def __getattr__(name: str):
    # ``uvicorn wa_proxy.server:app`` builds the application on first access.
    if name == "app":
        configure_logging()
        application = build_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
