"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from confsync.server.api import health, metrics

router = APIRouter()

router.include_router(health.router)
router.include_router(metrics.router)
