"""Shared types for confsync.

This module defines enums used by both the sync engine and the health server.
"""

from __future__ import annotations

from enum import Enum


class HealthStatus(str, Enum):
    """Derived health of the daemon.

    HEALTHY and DEGRADED are served with HTTP 200, UNHEALTHY with 503.
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class SyncPhase(str, Enum):
    """Phase of the sync pass currently executing (IDLE between passes)."""

    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    MATERIALIZING = "materializing"
