"""Application glue: builds and wires the sync subsystem.

This module provides:
- SyncApp: Owns the store, outbox, monitor, driver and domain services

Nothing is created at import time. The host constructs one SyncApp,
calls initialize() before using any service and cleanup() on shutdown.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from edusync.client.api import HTTPRemoteAPI
from edusync.client.connectivity import ConnectivityMonitor
from edusync.client.outbox import Outbox
from edusync.client.services import (
    CareerToolsService,
    CommunityService,
    LearningService,
    OfflineContentService,
)
from edusync.client.store import LocalStore, StoreError
from edusync.client.sync import InitializationError, SyncDriver

if TYPE_CHECKING:
    from collections.abc import Callable

    from edusync.client.api import RemoteAPI
    from edusync.core.config import AppConfig

logger = logging.getLogger(__name__)


class SyncApp:
    """Explicitly constructed container for the offline-first subsystem.

    Usage:
        with SyncApp(load_config(path)) as app:   # initialize() / cleanup()
            app.learning.save_lesson({...})
            app.monitor.report(True)              # platform network signal
            print(app.driver.status())
    """

    def __init__(
        self,
        config: AppConfig,
        remote: RemoteAPI | None = None,
        prober: Callable[[], bool] | None = None,
    ) -> None:
        """Build all components without starting anything.

        Args:
            config: Application configuration.
            remote: Backend client (default: HTTPRemoteAPI from config.server).
            prober: Reachability check (default: remote.health_check).

        Raises:
            ValueError: If no remote is given and no server is configured.
        """
        if remote is None:
            if config.server is None:
                raise ValueError("No server configured and no remote API given")
            remote = HTTPRemoteAPI(config.server)
            self._owns_remote = True
        else:
            self._owns_remote = False

        self.config = config
        self.remote = remote
        self.store = LocalStore(config.db_path)
        self.outbox = Outbox(self.store, max_attempts=config.sync.max_attempts)
        self.monitor = ConnectivityMonitor(
            prober=prober or remote.health_check,
            probe_interval=config.sync.probe_interval,
        )
        self.driver = SyncDriver(self.store, self.outbox, self.monitor, remote, config.sync)

        self.learning = LearningService(self.store, self.outbox, config.user_id)
        self.community = CommunityService(self.store, self.outbox, config.user_id)
        self.career = CareerToolsService(self.store, self.outbox, config.user_id)
        self.offline_content = OfflineContentService(self.store, config.content_dir)

        self._lock = threading.Lock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Open the store and start background sync. Idempotent.

        Raises:
            InitializationError: If the local store cannot be opened.
        """
        with self._lock:
            if self._initialized:
                return

            logger.info("Initializing edusync (data dir: %s)", self.config.data_dir)
            self.config.data_dir.mkdir(parents=True, exist_ok=True)
            try:
                self.store.open()
            except StoreError as e:
                raise InitializationError(f"Cannot open local store: {e}") from e

            self.monitor.probe()
            self.monitor.start()
            self.driver.start()
            self._initialized = True

        self._handle_first_run()
        logger.info("edusync initialized (%s)", self.monitor.state.value)

    def _handle_first_run(self) -> None:
        """Pull remote content when the local catalog is empty."""
        if self.store.count("courses") > 0:
            return
        if not self.monitor.is_online:
            logger.info("First run while offline, content will be pulled later")
            return
        try:
            self.driver.download_from_server()
        except Exception:
            logger.exception("First-run download failed")

    def cleanup(self) -> None:
        """Stop background work and release resources. Idempotent."""
        with self._lock:
            if not self._initialized:
                return
            self._initialized = False

            self.driver.stop()
            self.monitor.stop()
            try:
                self.offline_content.cleanup_orphaned_files()
            except Exception:
                logger.exception("Offline content cleanup failed")
            self.offline_content.close()
            self.store.close()
            if self._owns_remote and isinstance(self.remote, HTTPRemoteAPI):
                self.remote.close()
        logger.info("edusync stopped")

    def __enter__(self) -> SyncApp:
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.cleanup()
