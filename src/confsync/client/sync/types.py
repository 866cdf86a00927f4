"""Shared types and exceptions for sync operations.

This module provides:
- SyncError: Base exception for steady-state sync errors
- FetchError: Listing fetch failed after all retries (or was cancelled)
- DownloadError, DownloadCancelledError: Single-file download failures
- DownloadFailure: Tag identifying the cause of a DownloadError
- RemovalError: Failed to delete a local file
- HealthServerError: Health server could not be started
- DaemonError: Fatal daemon startup failure
- ChangeSet: Output of the change detector
- SyncResult: Outcome of one sync pass
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from confsync.client.api import FileRecord


class SyncError(Exception):
    """Base exception for sync errors."""


class FetchError(SyncError):
    """Failed to fetch the remote directory listing.

    Attributes:
        cause: The last underlying exception, if any.
        cancelled: True when retries were abandoned because the sync
            generation was cancelled; such fetches are not failures.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        cancelled: bool = False,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.cancelled = cancelled


class DownloadFailure(Enum):
    """Cause of a failed download."""

    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    FILESYSTEM = "filesystem"
    CANCELLED = "cancelled"


class DownloadError(SyncError):
    """Failed to download a file.

    Attributes:
        name: Remote file name.
        kind: What went wrong.
        status_code: HTTP status for HTTP_STATUS failures.
    """

    def __init__(
        self,
        name: str,
        message: str,
        kind: DownloadFailure,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.kind = kind
        self.status_code = status_code


class DownloadCancelledError(DownloadError):
    """Download stopped because its sync generation was superseded or shut down."""

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(
            name,
            message or f"download of {name} was cancelled",
            DownloadFailure.CANCELLED,
        )


class RemovalError(SyncError):
    """Failed to remove a local file."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class HealthServerError(SyncError):
    """Health server could not bind or start."""


class DaemonError(SyncError):
    """Fatal error while starting the daemon."""


@dataclass
class ChangeSet:
    """Result of comparing a fresh listing against the cached snapshot.

    Attributes:
        to_download: Records that are new or whose fingerprint changed, in listing order.
        next_snapshot: Every filtered, pattern-matching record keyed by name.
    """

    to_download: list[FileRecord]
    next_snapshot: Mapping[str, FileRecord]


@dataclass
class SyncResult:
    """Outcome of one sync pass.

    Attributes:
        generation: Number of the pass's sync generation.
        fetched: Whether the listing was fetched successfully.
        downloaded: Names downloaded in this pass.
        removed: Local names removed in this pass.
        failed: Names whose download or removal failed.
        cancelled: Whether downloads stopped early because the generation was cancelled.
        superseded: Whether the pass was superseded before it started its work.
        error: Fetch error message when the listing could not be fetched.
    """

    generation: int
    fetched: bool = False
    downloaded: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False
    superseded: bool = False
    error: str | None = None

    @property
    def changed(self) -> bool:
        """Check if the pass changed anything on disk."""
        return bool(self.downloaded or self.removed)
