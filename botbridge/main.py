"""FastAPI application wiring for the bot bridge.

- Configures logging (application and access logs).
- Builds the channel registry and the bot webhook client once, from one
  :class:`~botbridge.config.Settings` instance, and keeps them on
  ``app.state`` for the webhook routes.
- Exposes health/version endpoints and serves static assets (bot avatar).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .bots.webhook import WebhookClient
from .channels import ChannelAdapter, build_registry
from .config import Settings, get_settings
from .routers import webhooks

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    registry: Mapping[str, ChannelAdapter] | None = None,
    webhook: WebhookClient | None = None,
) -> FastAPI:
    """Create the application; ``registry`` and ``webhook`` may be injected."""

    if settings is None:
        settings = get_settings()

    app = FastAPI(title="botbridge", version=__version__)
    init_logging(app, settings.logging)

    app.state.settings = settings
    app.state.registry = registry if registry is not None else build_registry(settings)
    app.state.webhook = webhook or WebhookClient(timeout=settings.request_timeout)
    app.include_router(webhooks.router)

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    if os.path.isdir(settings.static_dir):
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")
    else:
        logger.debug("Static directory %s not found, not serving assets", settings.static_dir)

    logger.info("Channels enabled: %s", ", ".join(app.state.registry) or "none")
    return app


app = create_app()
