"""Pydantic schemas for health API responses."""

from __future__ import annotations

from pydantic import BaseModel

from confsync.client.status import HealthReport

# === Health schemas ===


class HealthResponse(BaseModel):
    """Liveness/health response."""

    status: str
    timestamp: str
    last_sync: str | None
    last_error: str | None
    synced_files: int
    total_requests: int
    failed_syncs: int
    uptime: float
    config: dict[str, str]


class ReadinessResponse(BaseModel):
    """Readiness probe response."""

    status: str
    error: str | None = None


# === Converters ===


def health_to_response(report: HealthReport, config: dict[str, str]) -> HealthResponse:
    """Convert a HealthReport to its API response."""
    return HealthResponse(
        status=report.status.value,
        timestamp=report.timestamp.isoformat(),
        last_sync=report.last_sync.isoformat() if report.last_sync else None,
        last_error=report.last_error or None,
        synced_files=report.synced_files,
        total_requests=report.total_requests,
        failed_syncs=report.failed_syncs,
        uptime=report.uptime.total_seconds(),
        config=config,
    )
