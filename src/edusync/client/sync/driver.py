"""Sync driver: pushes the outbox to the backend and pulls remote records.

This module provides:
- SyncDriver: Drains the outbox, performs bulk pulls, runs periodic sweeps

Triggers:
    periodic sweep (APScheduler) ──┐
    offline → online transition ───┼─► sync_pending_changes() ─► RemoteAPI.submit
    manual (CLI, pull-to-refresh) ─┘

Only one pass runs at a time. A trigger arriving while a pass is running
is dropped: the next periodic sweep or connectivity flip picks up whatever
is left. Entries are submitted one by one, oldest first, so mutations of
the same entity reach the backend in the order they were made.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import TYPE_CHECKING, Any, TypeVar

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from edusync.client.payloads import (
    ENTITY_COLLECTIONS,
    PayloadError,
    collection_for,
    parse_payload,
    payload_to_dict,
)
from edusync.client.sync.merge import MergeDecision, resolve_conflict
from edusync.client.sync.types import DownloadResult, OfflineError, SyncResult, SyncStatus
from edusync.core.config import SyncConfig
from edusync.core.types import utc_now_iso

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from edusync.client.api import RemoteAPI, RemoteRecord
    from edusync.client.connectivity import ConnectivityEvent, ConnectivityMonitor
    from edusync.client.outbox import Outbox, OutboxEntry
    from edusync.client.store import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

META_COLLECTION = "sync_meta"
LAST_SYNC_KEY = "lastSyncTime"

TRIGGER_MANUAL = "manual"
TRIGGER_PERIODIC = "periodic"
TRIGGER_CONNECTIVITY = "connectivity"


class SyncDriver:
    """Moves outbox entries to the backend and merges remote records locally.

    Usage:
        driver = SyncDriver(store, outbox, monitor, remote, config.sync)
        driver.start()    # periodic sweep + sync when connectivity returns

        result = driver.sync_pending_changes()
        driver.download_from_server(["course", "lesson"])

        driver.stop()
    """

    def __init__(
        self,
        store: LocalStore,
        outbox: Outbox,
        monitor: ConnectivityMonitor,
        remote: RemoteAPI,
        config: SyncConfig | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            store: Local store holding domain collections and sync metadata.
            outbox: Queue of pending mutations.
            monitor: Source of online/offline state.
            remote: Backend capabilities.
            config: Sync settings (defaults if None).
        """
        self._store = store
        self._outbox = outbox
        self._monitor = monitor
        self._remote = remote
        self._config = config or SyncConfig()

        # Held for the duration of a pass, acquired without blocking
        self._sync_lock = threading.Lock()
        # Guards start/stop and the executor
        self._lock = threading.RLock()

        self._scheduler: BackgroundScheduler | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._unsubscribe: Callable[[], None] | None = None
        # Set by stop() when a pass still needs the executor
        self._release_after_pass = False

    @property
    def sync_in_progress(self) -> bool:
        """Check if a sync pass is running."""
        return self._sync_lock.locked()

    @property
    def is_running(self) -> bool:
        """Check if background triggers are active."""
        return self._scheduler is not None

    @property
    def last_sync_time(self) -> str | None:
        """Completion time of the last sync pass, persisted across restarts."""
        record = self._store.find_one(META_COLLECTION, {"id": LAST_SYNC_KEY})
        return record.get("value") if record else None

    # === Remote calls ===

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=2, thread_name_prefix="edusync-remote"
                )
            return self._executor

    def _release_executor(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
            self._release_after_pass = False
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def _call_remote(self, func: Callable[..., T], *args: Any) -> T:
        """Run a remote call, giving up after ``remote_timeout`` seconds.

        Raises:
            TimeoutError: If the call did not complete in time.
        """
        future = self._get_executor().submit(func, *args)
        try:
            return future.result(timeout=self._config.remote_timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise

    # === Push ===

    def sync_pending_changes(self, trigger: str = TRIGGER_MANUAL) -> SyncResult:
        """Submit pending outbox entries to the backend.

        Does nothing when offline or when another pass is running. Remote
        failures are recorded on their entry and never raised.

        Args:
            trigger: What started the pass, for logging.

        Returns:
            Result of the pass.

        Raises:
            StoreError: If the local store fails.
        """
        if not self._monitor.is_online:
            logger.debug("Sync skipped (%s): offline", trigger)
            return SyncResult.skip(trigger, "offline")

        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync skipped (%s): already in progress", trigger)
            return SyncResult.skip(trigger, "in_progress")

        try:
            result = SyncResult(trigger=trigger)
            self._drain(result)
            self._set_last_sync_time(utc_now_iso())
        finally:
            self._sync_lock.release()
            with self._lock:
                release = self._release_after_pass
            if release:
                self._release_executor()

        if result.processed or result.deferred:
            logger.info(
                "Sync (%s): %d synced, %d failed, %d abandoned, %d deferred",
                trigger,
                len(result.synced),
                len(result.failed),
                len(result.abandoned),
                len(result.deferred),
            )
        return result

    def _drain(self, result: SyncResult) -> None:
        entries = self._outbox.drain(self._config.batch_size)
        if not entries:
            return
        logger.debug("Draining %d outbox entries", len(entries))

        # Entities with an abandoned entry, or a failed entry in this pass;
        # later entries must wait until the earlier one goes through
        blocked = {(e.entity_type, e.entity_id) for e in self._outbox.abandoned()}

        for entry in entries:
            key = (entry.entity_type, entry.entity_id)
            if key in blocked:
                result.deferred.append(entry.id)
                continue

            error = self._submit(entry)
            if error is None:
                self._outbox.mark_synced(entry.id)
                result.synced.append(entry.id)
                continue

            blocked.add(key)
            result.errors[entry.id] = error
            updated = self._outbox.record_failure(entry.id, error)
            if updated is not None and updated.is_abandoned:
                result.abandoned.append(entry.id)
            else:
                result.failed.append(entry.id)

    def _submit(self, entry: OutboxEntry) -> str | None:
        """Submit one entry.

        Returns:
            None on success, otherwise a failure message.
        """
        try:
            data = json.loads(entry.data)
            if isinstance(data, dict):
                data.setdefault("id", entry.entity_id)
            payload = parse_payload(entry.entity_type, data)
        except (ValueError, PayloadError) as e:
            logger.warning("Cannot decode outbox entry %s: %s", entry.id, e)
            return f"Invalid payload: {e}"

        try:
            accepted = self._call_remote(
                self._remote.submit,
                payload.entity_type,
                entry.action.value,
                payload_to_dict(payload),
            )
        except FuturesTimeoutError:
            logger.warning(
                "Timed out submitting %s %s/%s",
                entry.action.value,
                entry.entity_type,
                entry.entity_id,
            )
            return f"Timed out after {self._config.remote_timeout:.0f}s"
        except Exception as e:
            logger.warning(
                "Failed to submit %s %s/%s: %s",
                entry.action.value,
                entry.entity_type,
                entry.entity_id,
                e,
            )
            return str(e) or type(e).__name__

        if not accepted:
            logger.warning(
                "Backend rejected %s %s/%s",
                entry.action.value,
                entry.entity_type,
                entry.entity_id,
            )
            return "Rejected by backend"
        return None

    def _set_last_sync_time(self, value: str) -> None:
        with self._store.transaction():
            if self._store.find_one(META_COLLECTION, {"id": LAST_SYNC_KEY}):
                self._store.update(META_COLLECTION, {"value": value}, {"id": LAST_SYNC_KEY})
            else:
                self._store.insert(META_COLLECTION, {"id": LAST_SYNC_KEY, "value": value})

    # === Pull ===

    def download_from_server(
        self, entity_types: Sequence[str] | None = None
    ) -> DownloadResult:
        """Pull remote records and merge them into the local store.

        Merged records do not produce outbox entries. Entities with local
        changes the backend has not accepted yet keep their local copy, and
        remote records that do not validate are skipped.

        Args:
            entity_types: Entity types to pull (None = every known type).

        Returns:
            Counts of pulled and applied records.

        Raises:
            OfflineError: If called while offline. Nothing is read or written.
            PayloadError: If an entity type is unknown.
            APIError, httpx.RequestError, TimeoutError: On remote failure.
        """
        if not self._monitor.is_online:
            raise OfflineError("Cannot download content while offline")

        types = list(entity_types) if entity_types else list(ENTITY_COLLECTIONS)
        for entity_type in types:
            collection_for(entity_type)

        records = self._call_remote(self._remote.pull_all, types)
        result = DownloadResult(pulled=len(records))

        with self._store.transaction():
            # Local writes not yet accepted by the backend are newer than
            # anything the pull returns
            unsynced = self._outbox.unsynced_entities()
            for record in records:
                self._merge(record, result, unsynced)

        logger.info(
            "Downloaded %d records (%d applied, %d kept local, %d skipped)",
            result.pulled,
            result.applied,
            result.kept_local,
            result.skipped,
        )
        return result

    def _merge(
        self,
        record: RemoteRecord,
        result: DownloadResult,
        unsynced: set[tuple[str, str]],
    ) -> None:
        collection = ENTITY_COLLECTIONS.get(record.entity_type)
        record_id = record.data.get("id")
        if collection is None or not isinstance(record_id, str) or not record_id:
            logger.debug("Skipping remote %s record without usable id", record.entity_type)
            result.skipped += 1
            return

        try:
            parse_payload(record.entity_type, record.data)
        except PayloadError as e:
            logger.warning("Skipping invalid remote %s %s: %s", record.entity_type, record_id, e)
            result.skipped += 1
            return

        if (record.entity_type, record_id) in unsynced:
            logger.debug("Keeping %s %s: local changes not yet synced", record.entity_type, record_id)
            result.kept_local += 1
            return

        local = self._store.find_one(collection, {"id": record_id})
        decision = resolve_conflict(local, record.data)
        if decision == MergeDecision.KEEP_LOCAL:
            result.kept_local += 1
            return
        if decision == MergeDecision.INSERT:
            self._store.insert(collection, record.data)
        else:
            self._store.update(collection, record.data, {"id": record_id})

        result.applied += 1
        result.by_type[record.entity_type] = result.by_type.get(record.entity_type, 0) + 1

    # === Background triggers ===

    def _run_background(self, trigger: str) -> SyncResult | None:
        try:
            return self.sync_pending_changes(trigger)
        except Exception:
            logger.exception("Background sync failed (%s)", trigger)
            return None

    def _on_connectivity_change(self, event: ConnectivityEvent) -> None:
        if event.came_online:
            logger.info("Back online, syncing pending changes")
            self._run_background(TRIGGER_CONNECTIVITY)

    def _periodic_sweep(self) -> None:
        self._run_background(TRIGGER_PERIODIC)
        if self._config.retention_days is not None:
            try:
                self._outbox.purge_synced(self._config.retention_days)
            except Exception:
                logger.exception("Error during outbox purge")

    # === Lifecycle ===

    def start(self) -> None:
        """Subscribe to connectivity changes and start the periodic sweep."""
        with self._lock:
            if self._scheduler is not None:
                return  # Already running

            self._unsubscribe = self._monitor.subscribe(self._on_connectivity_change)

            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self._periodic_sweep,
                trigger=IntervalTrigger(seconds=self._config.sync_interval),
                id="sync_sweep",
                name="Outbox sweep",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.start()
        logger.info("Sync driver started (sweep every %.0fs)", self._config.sync_interval)

    def stop(self) -> None:
        """Stop background triggers. Safe to call multiple times.

        A pass already running completes on its own thread and releases
        the remote-call executor when it ends.
        """
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            scheduler, self._scheduler = self._scheduler, None
            executor = None
            if self._sync_lock.locked():
                self._release_after_pass = True
            else:
                executor, self._executor = self._executor, None

        if unsubscribe is not None:
            unsubscribe()
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Sync driver stopped")
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def status(self) -> SyncStatus:
        """Get a snapshot of the sync subsystem."""
        return SyncStatus(
            is_online=self._monitor.is_online,
            sync_in_progress=self.sync_in_progress,
            last_sync_time=self.last_sync_time,
            pending_count=self._outbox.pending_count(),
            abandoned_count=len(self._outbox.abandoned()),
        )
