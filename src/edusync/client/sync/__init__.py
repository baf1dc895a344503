"""Sync operations between the local store and the backend.

Architecture:
    domain services → Outbox → SyncDriver → RemoteAPI
                                   ▲
                      ConnectivityMonitor (offline → online)

Components:
- **SyncDriver**: Drains the outbox, bulk pulls, periodic sweeps
- **resolve_conflict**: Last-writer-wins merge of pulled records
- **SyncResult / DownloadResult / SyncStatus**: Results and snapshots
"""

from edusync.client.sync.driver import LAST_SYNC_KEY, META_COLLECTION, SyncDriver
from edusync.client.sync.merge import MergeDecision, resolve_conflict
from edusync.client.sync.types import (
    DownloadResult,
    InitializationError,
    OfflineError,
    SyncError,
    SyncResult,
    SyncStatus,
)

__all__ = [
    # Driver
    "LAST_SYNC_KEY",
    "META_COLLECTION",
    "SyncDriver",
    # Merge policy
    "MergeDecision",
    "resolve_conflict",
    # Types and errors
    "DownloadResult",
    "InitializationError",
    "OfflineError",
    "SyncError",
    "SyncResult",
    "SyncStatus",
]
