"""FastAPI application exposing the daemon's health surface.

This module creates and configures the FastAPI application with:
- /health, /health/live: Derived health status with counters
- /health/ready: Live reachability check of the remote URL
- /metrics: Prometheus-style counters
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from confsync.client.api import ListingClient
from confsync.client.status import HealthState
from confsync.core.config import SyncConfig
from confsync.server.api.router import router as api_router

logger = logging.getLogger(__name__)


def create_app(
    health: HealthState,
    config: SyncConfig,
    listing_client: ListingClient,
) -> FastAPI:
    """Create the health FastAPI application.

    Args:
        health: Health state shared with the sync engine.
        config: Daemon configuration.
        listing_client: Client used for readiness probes.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="confsync",
        description="Directory synchronization daemon health endpoints",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    application.state.health = health
    application.state.config = config
    application.state.listing_client = listing_client

    application.include_router(api_router)

    return application
