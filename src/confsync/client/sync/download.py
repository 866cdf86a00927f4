"""Atomic single-file download.

This module provides:
- FileMaterializer: Downloads one remote file into the local directory
- build_file_url: Joins the base URL and a file name

The body is streamed into a sibling temporary file (``<final>.tmp``) which is
renamed onto the final path only once complete. Any failure after the
temporary file is created removes it, so the final path is never observed
partially written.
"""

from __future__ import annotations

import contextlib
import logging
import socket
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from confsync.client.sync.generation import CancelReason, CancelScope
from confsync.client.sync.types import (
    DownloadCancelledError,
    DownloadError,
    DownloadFailure,
)
from confsync.core.config import format_duration

if TYPE_CHECKING:
    from confsync.core.config import SyncConfig

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"
CHUNK_SIZE = 64 * 1024

# httpcore trace event carrying the freshly connected network stream
_CONNECT_EVENT = "connection.connect_tcp.complete"


def build_file_url(base_url: str, name: str) -> str:
    """Build the download URL of a file: <base_url>/<name>."""
    return base_url.rstrip("/") + "/" + name


def _shutdown_stream(stream: Any) -> None:
    """Shut down the socket under a network stream, waking any blocked read."""
    sock = stream.get_extra_info("socket")
    if sock is None:
        return
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)


def _abort_response(response: httpx.Response) -> None:
    stream = response.extensions.get("network_stream")
    if stream is not None:
        _shutdown_stream(stream)
    else:
        response.close()


class FileMaterializer:
    """Downloads remote files with atomic writes and cooperative cancellation.

    Usage:
        materializer = FileMaterializer(config)
        generation = SyncGeneration(1)
        path = materializer.materialize("app.yaml", generation)
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the materializer.

        Args:
            config: Daemon configuration (URL, local directory, per-file timeout).
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = config.remote_url
        self._local_dir = Path(config.local_dir)
        self._download_timeout = config.download_timeout
        # Only connecting is bounded; reads are bounded by the cancel scope.
        # Every download gets its own connection so a cancelled one can be
        # shut down without touching pooled connections.
        self._client = httpx.Client(
            timeout=httpx.Timeout(None, connect=config.connect_timeout),
            limits=httpx.Limits(max_keepalive_connections=0),
            headers={"User-Agent": config.user_agent},
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def local_path(self, name: str) -> Path:
        """Final local path of a remote file.

        Raises:
            DownloadError: If the name would resolve outside the local directory.
        """
        try:
            root = self._local_dir.resolve()
            target = (root / name).resolve()
        except (OSError, ValueError) as e:
            raise DownloadError(
                name, f"invalid local path for {name!r}: {e}", DownloadFailure.FILESYSTEM
            ) from e
        if target == root or root not in target.parents:
            raise DownloadError(
                name,
                f"refusing to write {name!r} outside of {self._local_dir}",
                DownloadFailure.FILESYSTEM,
            )
        return self._local_dir / name

    def materialize(self, name: str, generation: CancelScope) -> Path:
        """Download one file and atomically publish it.

        Args:
            name: Remote file name, relative to the base URL and local directory.
            generation: Cancellation scope of the current sync pass. The request
                runs in a child scope that also carries the per-file timeout.

        Returns:
            Final local path.

        Raises:
            DownloadCancelledError: If the generation was cancelled.
            DownloadError: On timeout, non-200 status, transport or filesystem errors.
        """
        final_path = self.local_path(name)
        url = build_file_url(self._base_url, name)
        scope = generation.child(timeout=self._download_timeout or None)
        unregisters: list[Callable[[], None]] = []

        def trace(event_name: str, info: dict[str, Any]) -> None:
            # Lets a cancellation interrupt the wait for response headers
            if event_name == _CONNECT_EVENT:
                stream = info["return_value"]
                unregisters.append(scope.on_cancel(lambda: _shutdown_stream(stream)))

        try:
            self._check(scope, name)
            try:
                with self._client.stream(
                    "GET", url, extensions={"trace": trace}
                ) as response:
                    unregisters.append(scope.on_cancel(lambda: _abort_response(response)))
                    if response.status_code != 200:
                        raise DownloadError(
                            name,
                            f"failed to download {name}: server returned status "
                            f"{response.status_code}",
                            DownloadFailure.HTTP_STATUS,
                            status_code=response.status_code,
                        )
                    self._write_atomically(response, name, final_path, scope)
            except DownloadError:
                raise
            except Exception as e:
                raise self._classify(name, scope, e) from e
        finally:
            for unregister in unregisters:
                unregister()
            scope.close()

        logger.debug(f"Downloaded: {name}")
        return final_path

    def _write_atomically(
        self,
        response: httpx.Response,
        name: str,
        final_path: Path,
        scope: CancelScope,
    ) -> None:
        """Stream the body to <final>.tmp, then rename it onto the final path."""
        final_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = final_path.with_name(final_path.name + TEMP_SUFFIX)

        try:
            with open(tmp_path, "wb") as f:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    self._check(scope, name)
                    f.write(chunk)

            self._check(scope, name)
            tmp_path.replace(final_path)
        except Exception:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise

    def _check(self, scope: CancelScope, name: str) -> None:
        if scope.cancelled:
            raise self._cancelled_error(name, scope)

    def _cancelled_error(self, name: str, scope: CancelScope) -> DownloadError:
        if scope.reason is CancelReason.TIMEOUT:
            return DownloadError(
                name,
                f"download of {name} timed out after {format_duration(self._download_timeout)}",
                DownloadFailure.TIMEOUT,
            )
        return DownloadCancelledError(name)

    def _classify(self, name: str, scope: CancelScope, error: Exception) -> DownloadError:
        """Tag an unexpected exception with its cause."""
        # A cancelled scope shuts the connection down, so any error after it is the cancellation
        if scope.cancelled:
            return self._cancelled_error(name, scope)
        if isinstance(error, httpx.TimeoutException):
            return DownloadError(
                name, f"download of {name} timed out: {error}", DownloadFailure.TIMEOUT
            )
        if isinstance(error, (httpx.HTTPError, httpx.StreamError)):
            return DownloadError(
                name, f"failed to download {name}: {error}", DownloadFailure.TRANSPORT
            )
        if isinstance(error, OSError):
            return DownloadError(
                name, f"failed to write {name}: {error}", DownloadFailure.FILESYSTEM
            )
        raise error
