"""Sync operations between the remote listing and the local directory.

Architecture:
    ListingClient → detect_changes / scan_removals → FileMaterializer
                 ↖_____________ SyncEngine _____________↗

Components:
- **SyncEngine**: Runs one pass at a time, owns the snapshot and generations
- **detect_changes**: Pure fingerprint comparison against the cached snapshot
- **scan_removals**: Local files no longer present remotely
- **FileMaterializer**: Atomic single-file download with cancellation
- **SyncGeneration / CancelScope**: Cooperative cancellation of superseded work
- **retry_with_backoff**: Exponential backoff used by the listing fetch
"""

from confsync.client.sync.change_scanner import (
    detect_changes,
    remove_local_file,
    scan_removals,
)
from confsync.client.sync.download import TEMP_SUFFIX, FileMaterializer
from confsync.client.sync.engine import SyncEngine
from confsync.client.sync.generation import CancelReason, CancelScope, SyncGeneration
from confsync.client.sync.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_RETRIES,
    RetryAbortedError,
    backoff_delays,
    retry_with_backoff,
)
from confsync.client.sync.types import (
    ChangeSet,
    DaemonError,
    DownloadCancelledError,
    DownloadError,
    DownloadFailure,
    FetchError,
    HealthServerError,
    RemovalError,
    SyncError,
    SyncResult,
)

__all__ = [
    # Engine
    "SyncEngine",
    # Change detection
    "ChangeSet",
    "detect_changes",
    "remove_local_file",
    "scan_removals",
    # Download
    "FileMaterializer",
    "TEMP_SUFFIX",
    # Cancellation
    "CancelReason",
    "CancelScope",
    "SyncGeneration",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_RETRIES",
    "RetryAbortedError",
    "backoff_delays",
    "retry_with_backoff",
    # Errors and results
    "DaemonError",
    "DownloadCancelledError",
    "DownloadError",
    "DownloadFailure",
    "FetchError",
    "HealthServerError",
    "RemovalError",
    "SyncError",
    "SyncResult",
]
