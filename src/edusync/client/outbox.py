"""Outbox (sync queue) of local mutations awaiting the remote backend.

This module provides:
- OutboxEntry: One recorded mutation
- Outbox: Append-only queue persisted in the ``sync_status`` collection

Every domain write appends one entry in the same local transaction.
The sync driver drains pending entries oldest first, then marks each one
synced or records a failed attempt. Delivery is at-least-once: an entry
whose submission timed out may reach the backend and be sent again.

Persisted schema (camelCase, stable across versions):
    id, entityType, entityId, action, data, isSynced, syncAttempts,
    lastSyncAttempt, createdAt, status, lastError

``status`` and ``lastError`` were added after the first schema; entries
without them are read back using ``isSynced``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from edusync.client.payloads import EntityPayload, serialize_payload
from edusync.core.types import (
    EntryStatus,
    SyncAction,
    parse_timestamp,
    utc_now,
    utc_now_iso,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from edusync.client.store import LocalStore, Record

logger = logging.getLogger(__name__)

OUTBOX_COLLECTION = "sync_status"


@dataclass
class OutboxEntry:
    """A pending or processed local mutation.

    Attributes:
        id: Entry identifier.
        entity_type: Tag of the mutated entity (e.g. "lesson").
        entity_id: Identifier of the mutated record.
        action: create, update or delete.
        data: Serialized record (JSON string).
        is_synced: True once the backend accepted the mutation.
        sync_attempts: Number of failed submissions.
        last_sync_attempt: Timestamp of the last submission attempt.
        created_at: Timestamp of the mutation.
        status: pending, synced or abandoned.
        last_error: Message of the last failure, if any.
    """

    id: str
    entity_type: str
    entity_id: str
    action: SyncAction
    data: str
    is_synced: bool
    sync_attempts: int
    last_sync_attempt: str | None
    created_at: str
    status: EntryStatus = EntryStatus.PENDING
    last_error: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> OutboxEntry:
        """Create an OutboxEntry from a stored record."""
        is_synced = bool(record.get("isSynced", False))
        if record.get("status"):
            status = EntryStatus(record["status"])
        else:
            status = EntryStatus.SYNCED if is_synced else EntryStatus.PENDING
        return cls(
            id=record["id"],
            entity_type=record["entityType"],
            entity_id=record["entityId"],
            action=SyncAction(record["action"]),
            data=record.get("data") or "{}",
            is_synced=is_synced,
            sync_attempts=int(record.get("syncAttempts", 0)),
            last_sync_attempt=record.get("lastSyncAttempt"),
            created_at=record["createdAt"],
            status=status,
            last_error=record.get("lastError"),
        )

    def to_record(self) -> Record:
        """Convert to the persisted record layout."""
        return {
            "id": self.id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": self.action.value,
            "data": self.data,
            "isSynced": self.is_synced,
            "syncAttempts": self.sync_attempts,
            "lastSyncAttempt": self.last_sync_attempt,
            "createdAt": self.created_at,
            "status": self.status.value,
            "lastError": self.last_error,
        }

    @property
    def is_abandoned(self) -> bool:
        """Check if the entry exceeded its retry budget."""
        return self.status == EntryStatus.ABANDONED


class Outbox:
    """Durable queue of mutations, stored in the local store.

    Usage:
        outbox = Outbox(store, max_attempts=5)

        with store.transaction():
            store.insert("lessons", lesson)
            outbox.enqueue("lesson", lesson["id"], SyncAction.CREATE, lesson)

        for entry in outbox.drain():
            ...
            outbox.mark_synced(entry.id)  # or outbox.record_failure(entry.id)
    """

    def __init__(self, store: LocalStore, max_attempts: int | None = None) -> None:
        """Initialize the outbox.

        Args:
            store: Local store holding the ``sync_status`` collection.
            max_attempts: Failed attempts before an entry is abandoned
                (None = retry forever).
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts

    @property
    def store(self) -> LocalStore:
        """The underlying local store."""
        return self._store

    @property
    def max_attempts(self) -> int | None:
        """Retry budget per entry (None = unbounded)."""
        return self._max_attempts

    def enqueue(
        self,
        entity_type: str,
        entity_id: str,
        action: SyncAction | str,
        payload: EntityPayload | Mapping[str, Any],
    ) -> OutboxEntry:
        """Append a pending entry.

        Args:
            entity_type: Tag of the mutated entity.
            entity_id: Identifier of the mutated record.
            action: create, update or delete.
            payload: The record (model or mapping) to send.

        Returns:
            The new entry.

        Raises:
            StoreError: If the store cannot persist the entry.
        """
        entry = OutboxEntry(
            id=f"sync_{uuid.uuid4().hex}",
            entity_type=entity_type,
            entity_id=entity_id,
            action=SyncAction(action),
            data=serialize_payload(payload),
            is_synced=False,
            sync_attempts=0,
            last_sync_attempt=None,
            created_at=utc_now_iso(),
        )
        self._store.insert(OUTBOX_COLLECTION, entry.to_record())
        logger.debug(
            "Enqueued %s %s/%s (%s)", entry.action.value, entity_type, entity_id, entry.id
        )
        return entry

    def get(self, entry_id: str) -> OutboxEntry | None:
        """Get an entry by id."""
        record = self._store.find_one(OUTBOX_COLLECTION, {"id": entry_id})
        return OutboxEntry.from_record(record) if record else None

    def drain(self, batch_size: int | None = None) -> list[OutboxEntry]:
        """Return pending entries, oldest first.

        Entries created at the same instant keep their insertion order.

        Args:
            batch_size: Maximum number of entries (None = all pending).
        """
        records = self._store.find_many(
            OUTBOX_COLLECTION,
            lambda r: OutboxEntry.from_record(r).status == EntryStatus.PENDING,
            order_by="createdAt",
        )
        if batch_size is not None:
            records = records[:batch_size]
        return [OutboxEntry.from_record(r) for r in records]

    def mark_synced(self, entry_id: str) -> None:
        """Mark an entry as accepted by the backend. Idempotent."""
        updated = self._store.update(
            OUTBOX_COLLECTION,
            {
                "isSynced": True,
                "status": EntryStatus.SYNCED.value,
                "lastSyncAttempt": utc_now_iso(),
                "lastError": None,
            },
            lambda r: r["id"] == entry_id and not r.get("isSynced", False),
        )
        if updated:
            logger.debug("Marked %s as synced", entry_id)

    def record_failure(self, entry_id: str, error: str | None = None) -> OutboxEntry | None:
        """Record a failed submission attempt.

        Increments ``syncAttempts`` and stamps ``lastSyncAttempt``. When the
        retry budget is reached the entry becomes abandoned.

        Returns:
            The updated entry, or None if it does not exist or is synced.
        """
        with self._store.transaction():
            entry = self.get(entry_id)
            if entry is None or entry.is_synced:
                return None

            entry.sync_attempts += 1
            entry.last_sync_attempt = utc_now_iso()
            entry.last_error = error
            if self._max_attempts is not None and entry.sync_attempts >= self._max_attempts:
                entry.status = EntryStatus.ABANDONED
                logger.warning(
                    "Abandoning %s %s/%s after %d attempts: %s",
                    entry.action.value,
                    entry.entity_type,
                    entry.entity_id,
                    entry.sync_attempts,
                    error,
                )

            self._store.update(
                OUTBOX_COLLECTION,
                {
                    "syncAttempts": entry.sync_attempts,
                    "lastSyncAttempt": entry.last_sync_attempt,
                    "lastError": entry.last_error,
                    "status": entry.status.value,
                },
                {"id": entry_id},
            )
        return entry

    def abandoned(self) -> list[OutboxEntry]:
        """List entries excluded from automatic retries, oldest first."""
        records = self._store.find_many(
            OUTBOX_COLLECTION,
            {"status": EntryStatus.ABANDONED.value},
            order_by="createdAt",
        )
        return [OutboxEntry.from_record(r) for r in records]

    def retry_abandoned(self, entry_id: str | None = None) -> int:
        """Move abandoned entries back to pending.

        The attempt counter is kept, so an entry that fails again is
        abandoned again right away when a retry budget is configured.

        Args:
            entry_id: Entry to retry (None = all abandoned entries).

        Returns:
            Number of entries moved back to pending.
        """
        where: dict[str, Any] = {"status": EntryStatus.ABANDONED.value}
        if entry_id is not None:
            where["id"] = entry_id
        count = self._store.update(
            OUTBOX_COLLECTION, {"status": EntryStatus.PENDING.value}, where
        )
        if count:
            logger.info("Re-queued %d abandoned entries", count)
        return count

    def pending_count(self) -> int:
        """Number of entries waiting to be sent."""
        return len(self.drain())

    def entries_for(self, entity_type: str, entity_id: str) -> list[OutboxEntry]:
        """List every entry recorded for one entity, oldest first."""
        records = self._store.find_many(
            OUTBOX_COLLECTION,
            {"entityType": entity_type, "entityId": entity_id},
            order_by="createdAt",
        )
        return [OutboxEntry.from_record(r) for r in records]

    def has_pending(self, entity_type: str, entity_id: str) -> bool:
        """Check if an entity has mutations not yet accepted by the backend.

        Abandoned entries count: they are still waiting for a retry.
        """
        return any(not entry.is_synced for entry in self.entries_for(entity_type, entity_id))

    def unsynced_entities(self) -> set[tuple[str, str]]:
        """Get (entity_type, entity_id) of every entity with pending or abandoned entries."""
        records = self._store.find_many(
            OUTBOX_COLLECTION, lambda r: not r.get("isSynced", False)
        )
        return {(r["entityType"], r["entityId"]) for r in records}

    def purge_synced(self, older_than_days: int) -> int:
        """Delete synced entries older than the retention window.

        Pending and abandoned entries are never purged.

        Returns:
            Number of entries deleted.
        """
        cutoff = utc_now() - timedelta(days=older_than_days)

        def expired(record: Record) -> bool:
            if not record.get("isSynced", False):
                return False
            stamp = parse_timestamp(record.get("lastSyncAttempt") or record.get("createdAt"))
            return stamp is not None and stamp < cutoff

        deleted = self._store.delete(OUTBOX_COLLECTION, expired)
        if deleted:
            logger.info("Outbox purge: %d synced entries removed", deleted)
        else:
            logger.debug("Outbox purge: no synced entries older than %d days", older_than_days)
        return deleted
