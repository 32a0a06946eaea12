#!/usr/bin/env python3
"""Sync daemon for WDSC."""

import logging
import signal
import threading
from typing import Optional

from .config import Config
from .connection_pool import ConnectionPool
from .exceptions import WDSCError
from .logging_config import setup_logging
from .sync_manager import AutoSyncManager, ConfigurationEvent

logger = logging.getLogger(__name__)


class SyncDaemon:
    """Background daemon that keeps every enabled sync configuration mirrored."""

    POLL_INTERVAL = 1.0

    def __init__(self, config: Config):
        """Initialize sync daemon.

        Args:
            config: Configuration manager
        """
        self.config = config
        self.pool: Optional[ConnectionPool] = None
        self.manager: Optional[AutoSyncManager] = None
        self._stop_event = threading.Event()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down gracefully...")
            self._stop_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    def initialize(self) -> None:
        """Set up logging, the connection pool and the sync manager."""
        setup_logging(level=self.config.log_level, log_file=self.config.log_path)
        logger.info("=== WDSC Daemon Starting ===")

        self.pool = ConnectionPool(self.config)
        self.manager = AutoSyncManager(self.config.store, self.pool)
        self.manager.subscribe(self._on_configuration_changed)

    def _on_configuration_changed(self, event: ConfigurationEvent) -> None:
        config = event.configuration
        if event.removed:
            logger.debug(f"[{config.name}] removed")
        else:
            logger.debug(f"[{config.name}] {config.status_text()}")

    def start(self) -> None:
        """Start the sync daemon and block until stopped."""
        self.initialize()
        self._setup_signal_handlers()

        active = self.manager.get_active_configurations()
        logger.info(f"Sync daemon started. {len(active)} active sync configurations")

        try:
            while not self._stop_event.wait(self.POLL_INTERVAL):
                self._process_force_sync_requests()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def _process_force_sync_requests(self) -> None:
        """Run full syncs requested through signal files."""
        for config_id in self.config.take_force_sync_requests():
            logger.info(f"Force sync triggered by user: {config_id}")
            try:
                count = self.manager.sync_now(config_id)
                logger.info(f"Force sync finished: {count} files uploaded")
            except WDSCError as e:
                logger.error(f"Force sync failed: {e}")
            except OSError as e:
                logger.error(f"Force sync failed: {e}")

    def stop(self) -> None:
        """Stop the sync daemon."""
        logger.info("Stopping sync daemon...")
        self._stop_event.set()

        if self.manager:
            self.manager.dispose()
            self.manager = None
        if self.pool:
            self.pool.clear()

        logger.info("Sync daemon stopped")


def main():
    """Main entry point for daemon."""
    config = Config()
    daemon = SyncDaemon(config)
    daemon.start()


if __name__ == '__main__':
    main()
