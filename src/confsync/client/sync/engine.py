"""Sync engine running one synchronization pass at a time.

This module provides:
- SyncEngine: Owns the sync generation lifecycle, the cached snapshot, and the
  per-pass sequence fetch → reconcile → remove → download → bookkeeping

Pass lifecycle (SyncPhase):
    IDLE → FETCHING → RECONCILING → MATERIALIZING → IDLE
    A failed fetch returns straight to IDLE.

Starting a pass first cancels the previous generation, then waits for the
previous pass to unwind. Passes never execute their steps concurrently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

from confsync.client.sync.change_scanner import (
    detect_changes,
    remove_local_file,
    scan_removals,
)
from confsync.client.sync.generation import CancelReason, SyncGeneration
from confsync.client.sync.types import (
    DownloadCancelledError,
    DownloadError,
    FetchError,
    RemovalError,
    SyncResult,
)
from confsync.core.types import SyncPhase

if TYPE_CHECKING:
    from confsync.client.api import FileRecord, ListingClient
    from confsync.client.status import HealthState
    from confsync.client.sync.download import FileMaterializer
    from confsync.core.config import SyncConfig

logger = logging.getLogger(__name__)


class SyncEngine:
    """Coordinates sync passes between the remote listing and the local directory.

    The cached snapshot is only read and replaced by the thread holding the
    pass lock; it is never mutated in place.
    """

    def __init__(
        self,
        config: SyncConfig,
        client: ListingClient,
        materializer: FileMaterializer,
        health: HealthState,
    ) -> None:
        """Initialize the sync engine.

        Args:
            config: Daemon configuration.
            client: Listing fetcher.
            materializer: Single-file downloader.
            health: Health state updated after each pass.
        """
        self._config = config
        self._client = client
        self._materializer = materializer
        self._health = health

        self._snapshot: Mapping[str, FileRecord] = {}
        self._phase = SyncPhase.IDLE

        self._pass_lock = threading.Lock()
        self._generation_lock = threading.Lock()
        self._generation_counter = 0
        self._generation: SyncGeneration | None = None
        self._closed = False

    @property
    def phase(self) -> SyncPhase:
        """Phase of the pass currently executing."""
        return self._phase

    @property
    def snapshot(self) -> Mapping[str, FileRecord]:
        """Last committed snapshot of pattern-matching remote files."""
        return self._snapshot

    @property
    def current_generation(self) -> SyncGeneration | None:
        return self._generation

    def _begin_generation(self) -> SyncGeneration:
        """Cancel the current generation and make a new one current."""
        with self._generation_lock:
            if self._generation is not None:
                if self._generation.cancel(CancelReason.SUPERSEDED):
                    logger.debug(f"Cancelled sync generation {self._generation.number}")
            self._generation_counter += 1
            self._generation = SyncGeneration(self._generation_counter)
            if self._closed:
                self._generation.cancel(CancelReason.SHUTDOWN)
            return self._generation

    def cancel_current(self, reason: CancelReason = CancelReason.SUPERSEDED) -> bool:
        """Cancel the current generation's in-flight work.

        Returns:
            True if a generation was active and is now cancelled.
        """
        with self._generation_lock:
            if self._generation is None:
                return False
            return self._generation.cancel(reason)

    def shutdown(self) -> None:
        """Cancel the active generation and refuse to start new passes."""
        with self._generation_lock:
            self._closed = True
        self.cancel_current(CancelReason.SHUTDOWN)

    def run_pass(self) -> SyncResult:
        """Run one sync pass.

        Returns:
            SyncResult describing what the pass did.
        """
        generation = self._begin_generation()

        with self._pass_lock:
            if generation.cancelled:
                # Superseded (or shut down) while waiting for the previous pass
                logger.debug(f"Sync generation {generation.number} superseded before start")
                return SyncResult(generation=generation.number, superseded=True)
            try:
                return self._run(generation)
            finally:
                self._phase = SyncPhase.IDLE

    def _run(self, generation: SyncGeneration) -> SyncResult:
        config = self._config
        result = SyncResult(generation=generation.number)

        # 1. Fetch listing
        self._phase = SyncPhase.FETCHING
        try:
            records = self._client.fetch_listing(scope=generation)
        except FetchError as e:
            if e.cancelled:
                logger.info("Listing fetch cancelled")
                result.cancelled = True
            else:
                logger.error(f"Sync failed: {e}")
            result.error = str(e)
            return result
        result.fetched = True

        # 2. Reconcile against the cached snapshot and the live local directory
        self._phase = SyncPhase.RECONCILING
        changes = detect_changes(self._snapshot, records, config.file_regex)

        removals: list[str] = []
        if config.delete_files:
            try:
                removals = scan_removals(
                    config.local_dir, config.file_regex, changes.next_snapshot.keys()
                )
            except OSError as e:
                logger.warning(f"Could not scan local directory for cleanup: {e}")

        # 3. Removals strictly before downloads
        for name in removals:
            try:
                remove_local_file(config.local_dir, name)
            except RemovalError as e:
                logger.error(f"Error removing {name}: {e}")
                result.failed.append(name)
                continue
            result.removed.append(name)

        # 4. Downloads in listing order
        self._phase = SyncPhase.MATERIALIZING
        for record in changes.to_download:
            try:
                self._materializer.materialize(record.name, generation)
            except DownloadCancelledError:
                logger.info(f"Download of {record.name} cancelled due to new sync iteration")
                result.cancelled = True
                break
            except DownloadError as e:
                logger.error(f"Error downloading {record.name}: {e}")
                result.failed.append(record.name)
                continue
            result.downloaded.append(record.name)
            self._health.record_synced_file()

        # 5. Swap in the next snapshot
        self._snapshot = self._next_snapshot(
            changes.next_snapshot,
            result.downloaded + result.failed,
            changes.to_download,
        )

        # 6. Health bookkeeping
        self._health.record_pass(clear_error=not changes.to_download and not removals)

        # 7. Summary
        if result.changed:
            logger.info(
                f"Sync complete: downloaded {len(result.downloaded)}, removed "
                f"{len(result.removed)} files matching pattern '{config.file_pattern}'"
            )
        elif not changes.to_download and not removals:
            logger.debug("No changes detected")

        return result

    def _next_snapshot(
        self,
        detected: Mapping[str, FileRecord],
        attempted: list[str],
        to_download: list[FileRecord],
    ) -> dict[str, FileRecord]:
        """Build the snapshot to commit after a pass.

        Downloaded and failed records are committed. Records the pass never
        got to (because it was cancelled) keep their previous entry, or stay
        absent, so the next pass detects them again.
        """
        done = set(attempted)
        pending = {record.name for record in to_download if record.name not in done}

        snapshot: dict[str, FileRecord] = {}
        for name, record in detected.items():
            if name not in pending:
                snapshot[name] = record
            elif name in self._snapshot:
                snapshot[name] = self._snapshot[name]
        return snapshot
