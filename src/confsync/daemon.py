"""Synchronization daemon: application context and scheduling loop.

This module provides:
- AppContext: Explicitly owned application state passed to every component
- SyncDaemon: Runs sync passes on an interval, serves health, handles signals

Startup:
- Create the local directory (fatal on failure)
- Start the health server unless health_port is 0 (fatal on bind failure)
- Run a first pass immediately, then one per poll interval

Shutdown cancels the active generation, waits for the pass to unwind, then
stops the health server.
"""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import FrameType

import httpx
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from confsync.client.api import ListingClient
from confsync.client.status import HealthState
from confsync.client.sync.download import FileMaterializer
from confsync.client.sync.engine import SyncEngine
from confsync.client.sync.types import DaemonError, SyncResult
from confsync.core.config import SyncConfig
from confsync.server.app import create_app
from confsync.server.runner import HealthServer

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_pass"


@dataclass
class AppContext:
    """Everything a running daemon owns, created once and passed explicitly."""

    config: SyncConfig
    health: HealthState
    listing_client: ListingClient
    materializer: FileMaterializer
    engine: SyncEngine = field(init=False)

    def __post_init__(self) -> None:
        self.engine = SyncEngine(
            config=self.config,
            client=self.listing_client,
            materializer=self.materializer,
            health=self.health,
        )

    @classmethod
    def create(
        cls,
        config: SyncConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> AppContext:
        """Build the context for a configuration.

        Args:
            config: Daemon configuration.
            transport: Optional httpx transport shared by both HTTP clients (tests).
        """
        health = HealthState()
        return cls(
            config=config,
            health=health,
            listing_client=ListingClient(config, health, transport=transport),
            materializer=FileMaterializer(config, transport=transport),
        )

    def close(self) -> None:
        """Close the HTTP clients."""
        self.listing_client.close()
        self.materializer.close()


class SyncDaemon:
    """Periodically synchronizes the local directory with the remote listing.

    Usage:
        daemon = SyncDaemon(AppContext.create(config))
        daemon.run()  # blocks until SIGINT/SIGTERM
    """

    def __init__(self, context: AppContext) -> None:
        """Initialize the daemon.

        Args:
            context: Application context to run.
        """
        self.context = context
        self._scheduler: BackgroundScheduler | None = None
        self._health_server: HealthServer | None = None
        self._stop_event = threading.Event()

    @property
    def health_server(self) -> HealthServer | None:
        return self._health_server

    def _sync_job(self) -> SyncResult | None:
        """Job function for scheduled sync passes."""
        try:
            return self.context.engine.run_pass()
        except Exception:
            logger.exception("Unexpected error during sync pass")
            return None

    def start(self) -> None:
        """Prepare the local directory, start the health server and the scheduler.

        Raises:
            DaemonError: If the local directory cannot be created.
            HealthServerError: If the health server cannot be started.
        """
        config = self.context.config
        logger.info("Starting confsync")
        logger.info(f"  Remote URL:      {config.remote_url}")
        logger.info(f"  Local directory: {config.local_dir}")
        logger.info(f"  File pattern:    {config.file_pattern}")
        logger.info(f"  Poll interval:   {config.poll_interval:g}s")

        try:
            config.local_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DaemonError(f"Failed to create local directory {config.local_dir}: {e}") from e

        if config.health_port > 0:
            app = create_app(self.context.health, config, self.context.listing_client)
            self._health_server = HealthServer(app, port=config.health_port)
            self._health_server.start()

        self._scheduler = BackgroundScheduler()
        # Two instances: a tick during a long pass starts the superseding pass,
        # which cancels the running one and waits for it to unwind
        self._scheduler.add_job(
            self._sync_job,
            trigger=IntervalTrigger(seconds=config.poll_interval),
            id=SYNC_JOB_ID,
            name="Directory sync pass",
            next_run_time=datetime.now(UTC),
            coalesce=True,
            max_instances=2,
            replace_existing=True,
        )
        self._scheduler.start()

    def trigger(self) -> None:
        """Schedule an immediate sync pass in addition to the interval."""
        if self._scheduler is None:
            return
        logger.info("Manual sync triggered")
        self._scheduler.add_job(self._sync_job, name="Manual sync pass")

    def stop(self) -> None:
        """Cancel in-flight work and stop all background components."""
        self._stop_event.set()
        self.context.engine.shutdown()

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        if self._health_server is not None:
            self._health_server.stop()
            self._health_server = None

        self.context.close()
        logger.info("Shutdown complete")

    def _handle_stop_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down gracefully...")
        self._stop_event.set()

    def _handle_trigger_signal(self, signum: int, frame: FrameType | None) -> None:
        self.trigger()

    def install_signal_handlers(self) -> None:
        """Stop on SIGINT/SIGTERM; trigger a pass on SIGHUP where available."""
        signal.signal(signal.SIGINT, self._handle_stop_signal)
        signal.signal(signal.SIGTERM, self._handle_stop_signal)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, self._handle_trigger_signal)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a stop is requested.

        Returns:
            True if a stop was requested.
        """
        return self._stop_event.wait(timeout)

    def run(self) -> None:
        """Start, block until a stop signal arrives, then shut down."""
        self.install_signal_handlers()
        self.start()
        try:
            while not self.wait(timeout=1.0):
                pass
        finally:
            self.stop()
