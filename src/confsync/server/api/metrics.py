"""Prometheus-style metrics route."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from confsync.client.status import HealthReport, HealthState
from confsync.core.config import SyncConfig
from confsync.server.api.deps import get_config, get_health

router = APIRouter(tags=["metrics"])

METRIC_PREFIX = "confsync"


def render_metrics(report: HealthReport) -> str:
    """Render counters and gauges in the Prometheus text exposition format."""
    metrics = [
        ("synced_files_total", "counter", "Total number of synced files", report.synced_files),
        (
            "requests_total",
            "counter",
            "Total number of requests to remote server",
            report.total_requests,
        ),
        (
            "failed_syncs_total",
            "counter",
            "Total number of failed sync attempts",
            report.failed_syncs,
        ),
    ]

    lines: list[str] = []
    for name, kind, help_text, value in metrics:
        lines.append(f"# HELP {METRIC_PREFIX}_{name} {help_text}")
        lines.append(f"# TYPE {METRIC_PREFIX}_{name} {kind}")
        lines.append(f"{METRIC_PREFIX}_{name} {value}")

    lines.append(f"# HELP {METRIC_PREFIX}_uptime_seconds Uptime in seconds")
    lines.append(f"# TYPE {METRIC_PREFIX}_uptime_seconds gauge")
    lines.append(f"{METRIC_PREFIX}_uptime_seconds {report.uptime.total_seconds():f}")
    return "\n".join(lines) + "\n"


@router.get("/metrics", response_class=PlainTextResponse)
def metrics(
    health: Annotated[HealthState, Depends(get_health)],
    config: Annotated[SyncConfig, Depends(get_config)],
) -> PlainTextResponse:
    """Expose sync counters for scraping."""
    return PlainTextResponse(render_metrics(health.report(config.poll_interval)))
