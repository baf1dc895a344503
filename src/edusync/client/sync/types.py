"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, OfflineError, InitializationError: Exception classes
- EntryOutcome: Per-entry result of a drain pass
- SyncResult: Result of one sync_pending_changes() call
- DownloadResult: Result of one bulk pull
- SyncStatus: Snapshot for status displays
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from edusync.core.types import SyncState


class SyncError(Exception):
    """Base exception for sync errors."""


class OfflineError(SyncError):
    """An operation requiring the network was invoked while offline."""


class InitializationError(SyncError):
    """The application could not be initialized (local store unavailable)."""


@dataclass
class SyncResult:
    """Result of a sync pass.

    Attributes:
        trigger: What started the pass ("manual", "periodic", "connectivity").
        skipped: True if the pass did not run.
        reason: Why the pass was skipped ("offline", "in_progress").
        synced: Entry ids accepted by the backend.
        failed: Entry ids whose attempt failed (still pending).
        abandoned: Entry ids that exceeded their retry budget in this pass.
        deferred: Entry ids left untouched because an earlier entry for the
            same entity failed in this pass.
        errors: Entry id -> failure message.
    """

    trigger: str = "manual"
    skipped: bool = False
    reason: str | None = None
    synced: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    abandoned: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def skip(cls, trigger: str, reason: str) -> SyncResult:
        """Create a result for a pass that did not run."""
        return cls(trigger=trigger, skipped=True, reason=reason)

    @property
    def processed(self) -> int:
        """Number of entries submitted in this pass."""
        return len(self.synced) + len(self.failed) + len(self.abandoned)

    @property
    def success(self) -> bool:
        """True if the pass ran and no entry failed."""
        return not self.skipped and not self.failed and not self.abandoned


@dataclass
class DownloadResult:
    """Result of a bulk pull.

    Attributes:
        pulled: Records received from the backend.
        applied: Records written to the local store.
        kept_local: Records ignored because the local copy is newer.
        skipped: Records of unknown entity types or without an id.
        by_type: Entity type -> number of records applied.
    """

    pulled: int = 0
    applied: int = 0
    kept_local: int = 0
    skipped: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


@dataclass
class SyncStatus:
    """Snapshot of the sync subsystem."""

    is_online: bool
    sync_in_progress: bool
    last_sync_time: str | None
    pending_count: int
    abandoned_count: int

    @property
    def state(self) -> SyncState:
        """Aggregate state for a status badge."""
        if self.sync_in_progress:
            return SyncState.SYNCING
        if not self.is_online:
            return SyncState.OFFLINE
        return SyncState.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "state": self.state.value,
            "is_online": self.is_online,
            "sync_in_progress": self.sync_in_progress,
            "last_sync_time": self.last_sync_time,
            "pending_count": self.pending_count,
            "abandoned_count": self.abandoned_count,
        }
