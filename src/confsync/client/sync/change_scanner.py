"""Change detection between the cached snapshot and a fresh listing.

This module provides:
- detect_changes: Pure comparison of a listing against the previous snapshot
- scan_removals: Local files that match the pattern but are no longer remote
- remove_local_file: Deletes one local file, raising RemovalError on failure

Note the asymmetry: downloads are detected against the in-memory snapshot,
removals against the live local directory. A pattern-matching file placed in
the directory out-of-band is therefore deleted when it is not listed remotely.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from confsync.client.sync.types import ChangeSet, RemovalError

if TYPE_CHECKING:
    from confsync.client.api import FileRecord

logger = logging.getLogger(__name__)


def _matches(pattern: re.Pattern[str], name: str) -> bool:
    return pattern.search(name) is not None


def detect_changes(
    previous: Mapping[str, FileRecord],
    current: Iterable[FileRecord],
    pattern: re.Pattern[str],
) -> ChangeSet:
    """Compare a fresh listing against the previous snapshot.

    Entries that are not files, or whose name does not match the pattern,
    are dropped entirely. A remaining entry is downloaded when it is absent
    from ``previous`` or its (modified_marker, size) fingerprint differs.

    Args:
        previous: Snapshot from the last pass, keyed by name.
        current: Fetched listing, in server order.
        pattern: Compiled file-name pattern (unanchored search).

    Returns:
        ChangeSet with the records to download (listing order) and the next snapshot.
    """
    next_snapshot: dict[str, FileRecord] = {}
    to_download: list[FileRecord] = []

    for record in current:
        if not record.is_file or not _matches(pattern, record.name):
            continue

        next_snapshot[record.name] = record

        cached = previous.get(record.name)
        if cached is None or cached.fingerprint != record.fingerprint:
            to_download.append(record)

    return ChangeSet(to_download=to_download, next_snapshot=next_snapshot)


def scan_removals(
    local_dir: Path,
    pattern: re.Pattern[str],
    remote_names: Iterable[str],
) -> list[str]:
    """List local files that should be removed.

    Scans the top level of the local directory (not the snapshot). Every
    regular entry whose name matches the pattern and is absent from
    ``remote_names`` is returned, in sorted order.

    Args:
        local_dir: Local sync directory.
        pattern: Compiled file-name pattern.
        remote_names: Names of the filtered, pattern-matching remote files.

    Returns:
        Names to remove.

    Raises:
        OSError: If the directory cannot be scanned.
    """
    keep = set(remote_names)
    removals: list[str] = []

    with os.scandir(local_dir) as entries:
        for entry in entries:
            if entry.is_dir():
                continue
            if not _matches(pattern, entry.name):
                continue
            if entry.name not in keep:
                removals.append(entry.name)

    return sorted(removals)


def remove_local_file(local_dir: Path, name: str) -> None:
    """Remove one file from the local directory.

    Raises:
        RemovalError: If the file could not be deleted.
    """
    local_path = local_dir / name
    try:
        local_path.unlink()
    except OSError as e:
        raise RemovalError(name, f"failed to remove {local_path}: {e}") from e
    logger.debug(f"Removed: {name}")
