"""Process-wide health state of the sync daemon.

This module provides:
- HealthState: Lock-guarded counters, last error and last sync time
- HealthReport: Immutable snapshot with the derived health status

Architecture:
    SyncEngine / ListingClient ──record_*──► HealthState ◄──report()── health server

The sync loop writes, health-check callers read concurrently. Every field is
read and written under one lock so a report is always a consistent snapshot.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from confsync.core.types import HealthStatus

# An error is tolerated (degraded) while the last sync is within this many poll intervals
UNHEALTHY_AFTER_INTERVALS = 3


@dataclass(frozen=True)
class HealthReport:
    """Snapshot of the health state.

    Attributes:
        status: Derived health status.
        timestamp: When the snapshot was taken.
        start_time: When the daemon started.
        last_sync: When the last sync pass finished its bookkeeping, if ever.
        last_error: Last recorded error message ("" when none).
        synced_files: Files downloaded since startup.
        total_requests: Listing fetches issued since startup.
        failed_syncs: Failed listing fetches since startup.
    """

    status: HealthStatus
    timestamp: datetime
    start_time: datetime
    last_sync: datetime | None
    last_error: str
    synced_files: int
    total_requests: int
    failed_syncs: int

    @property
    def uptime(self) -> timedelta:
        """Time since startup."""
        return self.timestamp - self.start_time

    @property
    def is_available(self) -> bool:
        """Check if the status should be served as HTTP 200."""
        return self.status is not HealthStatus.UNHEALTHY


class HealthState:
    """Counters and timestamps describing the daemon's operational status.

    Counts are monotonic for the process lifetime. The last error is only
    cleared by a sync pass that fetched a listing and had nothing to do.
    """

    def __init__(self, start_time: datetime | None = None) -> None:
        """Initialize the state.

        Args:
            start_time: Process start time (defaults to now).
        """
        self._lock = threading.Lock()
        self._start_time = start_time or datetime.now(UTC)
        self._last_sync: datetime | None = None
        self._last_error = ""
        self._synced_files = 0
        self._total_requests = 0
        self._failed_syncs = 0

    @property
    def last_error(self) -> str:
        with self._lock:
            return self._last_error

    @property
    def last_sync(self) -> datetime | None:
        with self._lock:
            return self._last_sync

    def record_request(self) -> None:
        """Count one logical listing fetch."""
        with self._lock:
            self._total_requests += 1

    def record_failure(self, message: str) -> None:
        """Record a failed sync attempt and remember its error message."""
        with self._lock:
            self._last_error = message
            if message:
                self._failed_syncs += 1

    def record_synced_file(self) -> None:
        """Count one successfully downloaded file."""
        with self._lock:
            self._synced_files += 1

    def record_pass(self, clear_error: bool, now: datetime | None = None) -> None:
        """Record the end of a sync pass that fetched a listing.

        Args:
            clear_error: Whether the pass was a no-op and may clear the last error.
            now: Completion time (defaults to now).
        """
        with self._lock:
            self._last_sync = now or datetime.now(UTC)
            if clear_error:
                self._last_error = ""

    def report(self, poll_interval: float, now: datetime | None = None) -> HealthReport:
        """Take a snapshot and derive the health status.

        Healthy with no recorded error. With an error: degraded while the last
        sync happened within UNHEALTHY_AFTER_INTERVALS poll intervals,
        unhealthy otherwise (including when no sync was ever recorded).

        Args:
            poll_interval: Configured polling interval in seconds.
            now: Evaluation time (defaults to now).

        Returns:
            HealthReport snapshot.
        """
        now = now or datetime.now(UTC)
        with self._lock:
            status = HealthStatus.HEALTHY
            if self._last_error:
                threshold = now - timedelta(seconds=UNHEALTHY_AFTER_INTERVALS * poll_interval)
                if self._last_sync is None or self._last_sync < threshold:
                    status = HealthStatus.UNHEALTHY
                else:
                    status = HealthStatus.DEGRADED

            return HealthReport(
                status=status,
                timestamp=now,
                start_time=self._start_time,
                last_sync=self._last_sync,
                last_error=self._last_error,
                synced_files=self._synced_files,
                total_requests=self._total_requests,
                failed_syncs=self._failed_syncs,
            )
