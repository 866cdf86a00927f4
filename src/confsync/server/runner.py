"""Background uvicorn server for the health endpoints.

This module provides:
- HealthServer: Binds the health port and serves the FastAPI app on a daemon thread
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Any

import uvicorn

from confsync.client.sync.types import HealthServerError

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 5.0
SHUTDOWN_TIMEOUT = 5.0


class HealthServer:
    """Uvicorn server running the health app in a background thread.

    The socket is bound before the thread starts so a port conflict is
    reported to the caller instead of ending the thread.

    Usage:
        server = HealthServer(app, port=8080)
        server.start()
        ...
        server.stop()
    """

    def __init__(self, app: Any, port: int, host: str = "0.0.0.0") -> None:
        """Initialize the server.

        Args:
            app: ASGI application to serve.
            port: TCP port (0 picks a free port).
            host: Interface to bind.
        """
        self._app = app
        self._host = host
        self._port = port
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._socket: socket.socket | None = None

    @property
    def port(self) -> int:
        """Bound port (resolved after start when 0 was requested)."""
        return self._port

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Bind the port and start serving.

        Raises:
            HealthServerError: If the port cannot be bound or the server does not start.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._host, self._port))
        except OSError as e:
            sock.close()
            raise HealthServerError(
                f"failed to bind health server to {self._host}:{self._port}: {e}"
            ) from e
        self._port = sock.getsockname()[1]
        self._socket = sock

        config = uvicorn.Config(self._app, log_level="warning", access_log=False)
        server = uvicorn.Server(config)
        self._server = server

        self._thread = threading.Thread(
            target=self._serve,
            args=(server, sock),
            name="HealthServer",
            daemon=True,
        )
        self._thread.start()
        self._wait_for_started()
        logger.info(f"Health server starting on port {self._port}")

    def _serve(self, server: uvicorn.Server, sock: socket.socket) -> None:
        try:
            server.run(sockets=[sock])
        except Exception:
            logger.exception("Health server error")

    def _wait_for_started(self) -> None:
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while time.monotonic() < deadline:
            if self._server is not None and self._server.started:
                return
            if self._thread is not None and not self._thread.is_alive():
                break
            time.sleep(0.05)
        self.stop()
        raise HealthServerError(f"health server failed to start on port {self._port}")

    def stop(self) -> None:
        """Ask uvicorn to exit and wait for the thread."""
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT)
            if self._thread.is_alive():
                logger.warning("Health server did not shut down in time")
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._server = None
