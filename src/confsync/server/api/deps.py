"""FastAPI dependencies for health routes."""

from __future__ import annotations

from fastapi import Request

from confsync.client.api import ListingClient
from confsync.client.status import HealthState
from confsync.core.config import SyncConfig


def get_health(request: Request) -> HealthState:
    """Get health state from app state."""
    health: HealthState = request.app.state.health
    return health


def get_config(request: Request) -> SyncConfig:
    """Get daemon configuration from app state."""
    config: SyncConfig = request.app.state.config
    return config


def get_listing_client(request: Request) -> ListingClient:
    """Get the listing client used for readiness probes from app state."""
    client: ListingClient = request.app.state.listing_client
    return client
