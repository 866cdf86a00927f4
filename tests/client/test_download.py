"""Tests for atomic single-file downloads."""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from confsync.client.sync.download import TEMP_SUFFIX, FileMaterializer, build_file_url
from confsync.client.sync.generation import CancelReason, SyncGeneration
from confsync.client.sync.types import (
    DownloadCancelledError,
    DownloadError,
    DownloadFailure,
)
from confsync.core.config import SyncConfig


class CallbackStream(httpx.SyncByteStream):
    """Response body that runs a hook between two chunks."""

    def __init__(self, first: bytes, second: bytes, between: Callable[[], None]) -> None:
        self._first = first
        self._second = second
        self._between = between

    def __iter__(self) -> Iterator[bytes]:
        yield self._first
        self._between()
        yield self._second


def leftovers(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.rglob(f"*{TEMP_SUFFIX}"))


class TestBuildFileUrl:
    """Tests for build_file_url."""

    @pytest.mark.parametrize(
        ("base", "expected"),
        [
            ("http://remote/configs/", "http://remote/configs/app.yaml"),
            ("http://remote/configs", "http://remote/configs/app.yaml"),
        ],
    )
    def test_join(self, base: str, expected: str) -> None:
        assert build_file_url(base, "app.yaml") == expected


class TestFileMaterializer:
    """Tests for FileMaterializer.materialize."""

    @pytest.fixture
    def requests(self) -> list[httpx.Request]:
        return []

    def materializer(
        self,
        config: SyncConfig,
        handler: Callable[[httpx.Request], httpx.Response],
        requests: list[httpx.Request],
    ) -> FileMaterializer:
        def recording_handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return FileMaterializer(config, transport=httpx.MockTransport(recording_handler))

    def test_download(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        """Should write the body to the final path and leave no temporary file."""
        config = make_config(user_agent="confsync-test/1")
        materializer = self.materializer(
            config, lambda request: httpx.Response(200, content=b"key: value\n"), requests
        )

        path = materializer.materialize("app.yaml", SyncGeneration(1))

        assert path == sync_dir / "app.yaml"
        assert path.read_bytes() == b"key: value\n"
        assert leftovers(sync_dir) == []
        assert str(requests[0].url) == "http://remote.test/configs/app.yaml"
        assert requests[0].headers["User-Agent"] == "confsync-test/1"
        materializer.close()

    def test_overwrites_existing(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        (sync_dir / "app.yaml").write_text("old")
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"new"), requests
        )

        materializer.materialize("app.yaml", SyncGeneration(1))

        assert (sync_dir / "app.yaml").read_text() == "new"

    def test_creates_parent_directories(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"x"), requests
        )

        path = materializer.materialize("conf.d/nested/app.yaml", SyncGeneration(1))

        assert path == sync_dir / "conf.d" / "nested" / "app.yaml"
        assert path.read_bytes() == b"x"

    def test_non_200_leaves_filesystem_untouched(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        """A bad status must not create, truncate or replace anything."""
        (sync_dir / "app.yaml").write_text("old")
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(404, content=b"not found"), requests
        )

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("app.yaml", SyncGeneration(1))

        assert exc_info.value.kind is DownloadFailure.HTTP_STATUS
        assert exc_info.value.status_code == 404
        assert "server returned status 404" in str(exc_info.value)
        assert (sync_dir / "app.yaml").read_text() == "old"
        assert leftovers(sync_dir) == []

    def test_transport_error(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        materializer = self.materializer(make_config(), refuse, requests)

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("app.yaml", SyncGeneration(1))

        assert exc_info.value.kind is DownloadFailure.TRANSPORT
        assert not (sync_dir / "app.yaml").exists()

    def test_cancelled_mid_stream_is_atomic(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        """Cancelling the generation mid-body leaves neither final nor temp file."""
        generation = SyncGeneration(1)

        def handler(request: httpx.Request) -> httpx.Response:
            stream = CallbackStream(b"a" * 1024, b"b" * 1024, generation.cancel)
            return httpx.Response(200, stream=stream)

        materializer = self.materializer(make_config(), handler, requests)

        with pytest.raises(DownloadCancelledError) as exc_info:
            materializer.materialize("big.bin", generation)

        assert exc_info.value.kind is DownloadFailure.CANCELLED
        assert not (sync_dir / "big.bin").exists()
        assert leftovers(sync_dir) == []

    def test_cancelled_keeps_previous_version(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        (sync_dir / "app.yaml").write_text("previous")
        generation = SyncGeneration(1)

        def handler(request: httpx.Request) -> httpx.Response:
            stream = CallbackStream(b"new-", b"content", generation.cancel)
            return httpx.Response(200, stream=stream)

        materializer = self.materializer(make_config(), handler, requests)

        with pytest.raises(DownloadCancelledError):
            materializer.materialize("app.yaml", generation)

        assert (sync_dir / "app.yaml").read_text() == "previous"
        assert leftovers(sync_dir) == []

    def test_already_cancelled_generation(
        self,
        make_config: Callable[..., SyncConfig],
        requests: list[httpx.Request],
    ) -> None:
        """A cancelled generation should not issue any request."""
        generation = SyncGeneration(1)
        generation.cancel(CancelReason.SHUTDOWN)
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"x"), requests
        )

        with pytest.raises(DownloadCancelledError):
            materializer.materialize("app.yaml", generation)

        assert requests == []

    def test_download_timeout(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        """Exceeding the per-file timeout fails with TIMEOUT, not cancellation."""
        generation = SyncGeneration(1)

        def handler(request: httpx.Request) -> httpx.Response:
            stream = CallbackStream(b"slow", b"body", lambda: time.sleep(0.3))
            return httpx.Response(200, stream=stream)

        materializer = self.materializer(make_config(download_timeout=0.05), handler, requests)

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("slow.yaml", generation)

        assert exc_info.value.kind is DownloadFailure.TIMEOUT
        assert not isinstance(exc_info.value, DownloadCancelledError)
        assert not generation.cancelled
        assert not (sync_dir / "slow.yaml").exists()
        assert leftovers(sync_dir) == []

    def test_filesystem_error(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        """A parent path that is a regular file fails with FILESYSTEM."""
        (sync_dir / "blocker").write_text("not a directory")
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"x"), requests
        )

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("blocker/app.yaml", SyncGeneration(1))

        assert exc_info.value.kind is DownloadFailure.FILESYSTEM
        assert (sync_dir / "blocker").read_text() == "not a directory"

    @pytest.mark.parametrize("name", ["../escape.yaml", "a/../../escape.yaml"])
    def test_rejects_paths_outside_local_dir(
        self,
        name: str,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        requests: list[httpx.Request],
    ) -> None:
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"x"), requests
        )

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize(name, SyncGeneration(1))

        assert exc_info.value.kind is DownloadFailure.FILESYSTEM
        assert requests == []
        assert not (sync_dir.parent / "escape.yaml").exists()

    def test_rejects_names_the_filesystem_cannot_hold(
        self,
        make_config: Callable[..., SyncConfig],
        requests: list[httpx.Request],
    ) -> None:
        materializer = self.materializer(
            make_config(), lambda request: httpx.Response(200, content=b"x"), requests
        )

        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("bad\x00.yaml", SyncGeneration(1))

        assert exc_info.value.kind is DownloadFailure.FILESYSTEM
        assert requests == []


class StallingServer:
    """Real TCP server that sends a response head, then goes silent.

    The connection stays open until ``release`` is set, so the client blocks
    inside a socket read.
    """

    BODY_HEAD = b"HTTP/1.1 200 OK\r\nContent-Length: 100000\r\n\r\n0123456789"

    def __init__(self, head: bytes) -> None:
        self._head = head
        self._sock = socket.create_server(("127.0.0.1", 0))
        self._sock.settimeout(5)
        self.port = self._sock.getsockname()[1]
        self.connected = threading.Event()
        self.release = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        try:
            conn, _ = self._sock.accept()
        except OSError:
            return
        with conn:
            conn.recv(65536)
            self.connected.set()
            if self._head:
                conn.sendall(self._head)
            self.release.wait(timeout=30)

    def close(self) -> None:
        self.release.set()
        self._thread.join(timeout=5)
        self._sock.close()


class TestStalledDownload:
    """Cancellation and timeouts against a server that stops sending."""

    @pytest.fixture
    def stalling_server(self) -> Iterator[Callable[[bytes], StallingServer]]:
        servers: list[StallingServer] = []

        def start(head: bytes) -> StallingServer:
            server = StallingServer(head)
            servers.append(server)
            return server

        yield start

        for server in servers:
            server.close()

    def materializer(
        self, make_config: Callable[..., SyncConfig], server: StallingServer, **overrides: Any
    ) -> FileMaterializer:
        config = make_config(remote_url=f"http://127.0.0.1:{server.port}/", **overrides)
        return FileMaterializer(config)

    def test_timeout_interrupts_stalled_body(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        stalling_server: Callable[[bytes], StallingServer],
    ) -> None:
        server = stalling_server(StallingServer.BODY_HEAD)
        materializer = self.materializer(make_config, server, download_timeout=0.5)

        started = time.monotonic()
        with pytest.raises(DownloadError) as exc_info:
            materializer.materialize("stalled.yaml", SyncGeneration(1))

        assert time.monotonic() - started < 5
        assert exc_info.value.kind is DownloadFailure.TIMEOUT
        assert not (sync_dir / "stalled.yaml").exists()
        assert leftovers(sync_dir) == []
        materializer.close()

    def test_cancel_interrupts_stalled_body(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        stalling_server: Callable[[bytes], StallingServer],
    ) -> None:
        (sync_dir / "stalled.yaml").write_text("previous")
        server = stalling_server(StallingServer.BODY_HEAD)
        materializer = self.materializer(make_config, server)
        generation = SyncGeneration(1)
        timer = threading.Timer(0.3, generation.cancel)
        timer.start()

        started = time.monotonic()
        with pytest.raises(DownloadCancelledError):
            materializer.materialize("stalled.yaml", generation)

        assert time.monotonic() - started < 5
        assert server.connected.is_set()
        assert (sync_dir / "stalled.yaml").read_text() == "previous"
        assert leftovers(sync_dir) == []
        timer.cancel()
        materializer.close()

    def test_cancel_interrupts_wait_for_headers(
        self,
        make_config: Callable[..., SyncConfig],
        sync_dir: Path,
        stalling_server: Callable[[bytes], StallingServer],
    ) -> None:
        """A server that never answers does not hold the pass hostage."""
        server = stalling_server(b"")
        materializer = self.materializer(make_config, server)
        generation = SyncGeneration(1)
        timer = threading.Timer(0.3, generation.cancel)
        timer.start()

        started = time.monotonic()
        with pytest.raises(DownloadCancelledError):
            materializer.materialize("silent.yaml", generation)

        assert time.monotonic() - started < 5
        assert server.connected.is_set()
        assert not (sync_dir / "silent.yaml").exists()
        assert leftovers(sync_dir) == []
        timer.cancel()
        materializer.close()
