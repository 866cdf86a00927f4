"""HTTP client for the remote directory listing.

This module provides:
- FileRecord, FileKind: One remote directory entry
- parse_listing: Validates a decoded JSON listing
- ListingClient: Fetches the listing with bounded retry/backoff and probes readiness
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from confsync.client.sync.retry import RetryAbortedError, retry_with_backoff
from confsync.client.sync.types import FetchError

if TYPE_CHECKING:
    from confsync.client.status import HealthState
    from confsync.client.sync.generation import CancelScope
    from confsync.core.config import SyncConfig

logger = logging.getLogger(__name__)

# Readiness probes use their own short, fixed timeout
READINESS_TIMEOUT = 5.0


class FileKind(str, Enum):
    """Kind of a remote directory entry. Anything but "file" is OTHER."""

    FILE = "file"
    OTHER = "other"


@dataclass(frozen=True)
class FileRecord:
    """One entry of the remote directory listing.

    ``modified_marker`` is an opaque server-supplied token; together with
    ``size`` it forms the fingerprint used for change detection.
    """

    name: str
    kind: FileKind
    modified_marker: str
    size: int

    @property
    def fingerprint(self) -> tuple[str, int]:
        """The (modified_marker, size) pair compared between passes."""
        return (self.modified_marker, self.size)

    @property
    def is_file(self) -> bool:
        return self.kind is FileKind.FILE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileRecord:
        """Create from a listing entry.

        Raises:
            ValueError: If the entry does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise ValueError(f"listing entry is not an object: {data!r}")

        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError(f"listing entry has no valid name: {data!r}")

        entry_type = data.get("type", "")
        mtime = data.get("mtime", "")
        size = data.get("size", 0)
        if not isinstance(entry_type, str) or not isinstance(mtime, str):
            raise ValueError(f"listing entry {name!r} has a non-string type or mtime")
        if isinstance(size, bool) or not isinstance(size, int):
            raise ValueError(f"listing entry {name!r} has a non-integer size")

        return cls(
            name=name,
            kind=FileKind.FILE if entry_type == FileKind.FILE.value else FileKind.OTHER,
            modified_marker=mtime,
            size=size,
        )


def parse_listing(data: Any) -> list[FileRecord]:
    """Convert a decoded JSON listing into FileRecords, preserving order.

    Entries of any kind are kept; filtering happens in the change detector.

    Raises:
        ValueError: If the body is not an array of entry objects.
    """
    if not isinstance(data, list):
        raise ValueError("directory listing is not a JSON array")
    return [FileRecord.from_dict(entry) for entry in data]


class _AttemptError(Exception):
    """One listing attempt failed (retryable)."""


class ListingClient:
    """HTTP client for the remote directory listing.

    Every logical fetch counts once towards the request counter, however many
    attempts it takes. A fetch that exhausts its retries is recorded into the
    health state as a failed sync.
    """

    def __init__(
        self,
        config: SyncConfig,
        health: HealthState,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        """Initialize the listing client.

        Args:
            config: Daemon configuration (URL, timeouts, retries, user agent).
            health: Health state to record requests and failures into.
            transport: Optional httpx transport (used by tests).
            sleep: Optional function used for backoff waits instead of the
                cancel scope (used by tests).
        """
        self._url = config.remote_url
        self._max_retries = config.max_retries
        self._retry_delay = config.retry_delay
        self._health = health
        self._sleep = sleep
        self._client = httpx.Client(
            timeout=config.connect_timeout,
            headers={"User-Agent": config.user_agent},
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ListingClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _fetch_once(self) -> list[FileRecord]:
        try:
            response = self._client.get(self._url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise _AttemptError(f"failed to fetch directory listing: {e}") from e

        if response.status_code != 200:
            raise _AttemptError(
                f"server returned status {response.status_code}: {response.reason_phrase}"
            )

        try:
            return parse_listing(response.json())
        except ValueError as e:
            raise _AttemptError(f"failed to parse JSON response: {e}") from e

    def fetch_listing(self, scope: CancelScope | None = None) -> list[FileRecord]:
        """Fetch and parse the remote directory listing.

        Makes up to ``max_retries`` additional attempts on failure, waiting
        ``retry_delay * 2^(k-1)`` before attempt k.

        Args:
            scope: Cancellation scope of the current sync generation. Backoff
                waits end early when it is cancelled, abandoning the fetch.

        Returns:
            Listing entries in server order.

        Raises:
            FetchError: If every attempt failed, or the scope was cancelled.
        """
        self._health.record_request()

        sleep: Callable[[float], Any]
        if self._sleep is not None:
            sleep = self._sleep
        elif scope is not None:
            sleep = scope.wait
        else:
            sleep = time.sleep

        try:
            records: list[FileRecord] = retry_with_backoff(
                self._fetch_once,
                max_retries=self._max_retries,
                initial_backoff=self._retry_delay,
                retryable_exceptions=(_AttemptError,),
                sleep=sleep,
                should_abort=(lambda: scope.cancelled) if scope is not None else None,
            )
        except RetryAbortedError as e:
            raise FetchError(
                "directory listing fetch cancelled",
                cause=e.last_exception,
                cancelled=True,
            ) from e
        except _AttemptError as e:
            message = f"failed after {self._max_retries} retries: {e}"
            self._health.record_failure(message)
            raise FetchError(message, cause=e.__cause__ or e) from e

        logger.debug(f"Fetched directory listing: {len(records)} entries")
        return records

    def check_ready(self) -> str | None:
        """Probe the remote URL with a HEAD request.

        Any HTTP response counts as reachable; the health state's error
        memory plays no part.

        Returns:
            None when reachable, otherwise a short error description.
        """
        try:
            self._client.head(self._url, timeout=READINESS_TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug(f"Readiness probe failed: {e}")
            return "remote server unreachable"
        return None
