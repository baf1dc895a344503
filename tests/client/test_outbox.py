"""Tests for the outbox (sync queue)."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from edusync.client.outbox import OUTBOX_COLLECTION, Outbox, OutboxEntry
from edusync.client.payloads import LessonPayload
from edusync.client.store import LocalStore, StoreUnavailableError
from edusync.core.types import EntryStatus, SyncAction


class TestEnqueue:
    """Tests for appending entries."""

    def test_enqueue_creates_pending_entry(self, outbox: Outbox) -> None:
        """A new entry should be pending with no attempts."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1", "title": "A"})

        assert entry.id.startswith("sync_")
        assert entry.is_synced is False
        assert entry.sync_attempts == 0
        assert entry.last_sync_attempt is None
        assert entry.status == EntryStatus.PENDING
        assert json.loads(entry.data) == {"id": "l1", "title": "A"}

    def test_enqueue_persists_camel_case_schema(
        self, outbox: Outbox, store: LocalStore
    ) -> None:
        """The stored record should use the stable camelCase schema."""
        entry = outbox.enqueue("lesson", "l1", "update", {"id": "l1"})

        record = store.find_one(OUTBOX_COLLECTION, {"id": entry.id})
        assert set(record) >= {
            "id", "entityType", "entityId", "action", "data", "isSynced",
            "syncAttempts", "lastSyncAttempt", "createdAt",
        }
        assert record["action"] == "update"
        assert isinstance(record["data"], str)

    def test_enqueue_accepts_payload_model(self, outbox: Outbox) -> None:
        """Should serialize payload models with camelCase keys."""
        payload = LessonPayload(id="l1", course_id="c1", title="Intro")

        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, payload)

        data = json.loads(entry.data)
        assert data["courseId"] == "c1"
        assert "entityType" not in data

    def test_enqueue_never_rejects_on_shape(self, outbox: Outbox) -> None:
        """Values that are not JSON-serializable should be stringified."""
        when = datetime(2025, 1, 1, tzinfo=UTC)

        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1", "at": when, "s": {1, 2}})

        data = json.loads(entry.data)
        assert data["at"] == str(when)

    def test_enqueue_fails_when_store_unavailable(self, store: LocalStore) -> None:
        """Store failures should propagate."""
        outbox = Outbox(store)
        store.close()

        with pytest.raises(StoreUnavailableError):
            outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})

    def test_rejects_invalid_max_attempts(self, store: LocalStore) -> None:
        with pytest.raises(ValueError):
            Outbox(store, max_attempts=0)


class TestDrain:
    """Tests for reading pending entries."""

    def test_drain_returns_oldest_first(self, outbox: Outbox) -> None:
        """Entries should be drained FIFO by creation time."""
        ids = [
            outbox.enqueue("lesson", f"l{i}", SyncAction.CREATE, {"id": f"l{i}"}).id
            for i in range(5)
        ]

        assert [e.id for e in outbox.drain()] == ids

    def test_drain_ties_keep_insertion_order(self, outbox: Outbox) -> None:
        """Entries created at the same instant keep insertion order."""
        with patch("edusync.client.outbox.utc_now_iso", return_value="2025-01-01T00:00:00+00:00"):
            ids = [
                outbox.enqueue("lesson", "l1", SyncAction.UPDATE, {"id": "l1", "v": i}).id
                for i in range(3)
            ]

        assert [e.id for e in outbox.drain()] == ids

    def test_drain_excludes_synced_and_abandoned(self, store: LocalStore) -> None:
        """Only pending entries should be drained."""
        outbox = Outbox(store, max_attempts=1)
        synced = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        abandoned = outbox.enqueue("lesson", "l2", SyncAction.CREATE, {"id": "l2"})
        pending = outbox.enqueue("lesson", "l3", SyncAction.CREATE, {"id": "l3"})

        outbox.mark_synced(synced.id)
        outbox.record_failure(abandoned.id, "boom")

        assert [e.id for e in outbox.drain()] == [pending.id]

    def test_drain_batch_size(self, outbox: Outbox) -> None:
        """Should limit the number of returned entries."""
        for i in range(5):
            outbox.enqueue("lesson", f"l{i}", SyncAction.CREATE, {"id": f"l{i}"})

        batch = outbox.drain(batch_size=2)

        assert [e.entity_id for e in batch] == ["l0", "l1"]
        assert outbox.pending_count() == 5

    def test_drain_empty(self, outbox: Outbox) -> None:
        assert outbox.drain() == []


class TestMarkSynced:
    """Tests for successful submissions."""

    def test_mark_synced(self, outbox: Outbox) -> None:
        """Should flag the entry as synced."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})

        outbox.mark_synced(entry.id)

        stored = outbox.get(entry.id)
        assert stored.is_synced is True
        assert stored.status == EntryStatus.SYNCED
        assert stored.last_sync_attempt is not None

    def test_mark_synced_is_idempotent(self, outbox: Outbox) -> None:
        """Marking twice should not raise nor change the entry."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        outbox.mark_synced(entry.id)
        first = outbox.get(entry.id)

        outbox.mark_synced(entry.id)

        assert outbox.get(entry.id) == first

    def test_mark_synced_unknown_entry(self, outbox: Outbox) -> None:
        """Unknown ids should be ignored."""
        outbox.mark_synced("sync_missing")


class TestRecordFailure:
    """Tests for failed submissions and abandonment."""

    def test_increments_attempts(self, outbox: Outbox) -> None:
        """Each failure should increment the attempt counter."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})

        outbox.record_failure(entry.id, "timeout")
        updated = outbox.record_failure(entry.id, "503")

        assert updated.sync_attempts == 2
        assert updated.last_error == "503"
        assert updated.last_sync_attempt is not None
        assert updated.status == EntryStatus.PENDING
        assert outbox.get(entry.id).sync_attempts == 2

    def test_unbounded_retries_by_default(self, outbox: Outbox) -> None:
        """Without max_attempts an entry stays pending forever."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})

        for _ in range(20):
            outbox.record_failure(entry.id)

        assert outbox.get(entry.id).status == EntryStatus.PENDING

    def test_abandons_after_max_attempts(self, store: LocalStore) -> None:
        """The entry should be abandoned once the budget is reached."""
        outbox = Outbox(store, max_attempts=3)
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})

        outbox.record_failure(entry.id)
        outbox.record_failure(entry.id)
        assert outbox.get(entry.id).status == EntryStatus.PENDING

        updated = outbox.record_failure(entry.id, "rejected")

        assert updated.is_abandoned
        assert [e.id for e in outbox.abandoned()] == [entry.id]
        assert outbox.drain() == []

    def test_failure_on_synced_entry_is_ignored(self, outbox: Outbox) -> None:
        """A synced entry should never go back to failing."""
        entry = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        outbox.mark_synced(entry.id)

        assert outbox.record_failure(entry.id) is None
        assert outbox.get(entry.id).sync_attempts == 0

    def test_retry_abandoned(self, store: LocalStore) -> None:
        """Retrying should move abandoned entries back to pending."""
        outbox = Outbox(store, max_attempts=1)
        e1 = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        e2 = outbox.enqueue("lesson", "l2", SyncAction.CREATE, {"id": "l2"})
        outbox.record_failure(e1.id)
        outbox.record_failure(e2.id)

        assert outbox.retry_abandoned(e1.id) == 1
        assert [e.id for e in outbox.drain()] == [e1.id]

        assert outbox.retry_abandoned() == 1
        assert outbox.abandoned() == []
        assert outbox.get(e2.id).sync_attempts == 1


class TestQueries:
    """Tests for outbox lookups."""

    def test_entries_for_entity(self, outbox: Outbox) -> None:
        outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        outbox.enqueue("lesson", "l2", SyncAction.CREATE, {"id": "l2"})
        update = outbox.enqueue("lesson", "l1", SyncAction.UPDATE, {"id": "l1"})

        entries = outbox.entries_for("lesson", "l1")

        assert [e.action for e in entries] == [SyncAction.CREATE, SyncAction.UPDATE]
        outbox.mark_synced(entries[0].id)
        assert outbox.has_pending("lesson", "l1")
        outbox.mark_synced(update.id)
        assert not outbox.has_pending("lesson", "l1")

    def test_unsynced_entities(self, store: LocalStore) -> None:
        """Pending and abandoned entries both count as not yet synced."""
        outbox = Outbox(store, max_attempts=1)
        outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        abandoned = outbox.enqueue("course", "c1", SyncAction.DELETE, {"id": "c1"})
        synced = outbox.enqueue("quiz", "q1", SyncAction.CREATE, {"id": "q1"})
        outbox.record_failure(abandoned.id, "boom")
        outbox.mark_synced(synced.id)

        assert outbox.unsynced_entities() == {("lesson", "l1"), ("course", "c1")}
        assert outbox.has_pending("course", "c1")
        assert not outbox.has_pending("quiz", "q1")

    def test_reads_entries_without_status(self, store: LocalStore) -> None:
        """Entries written before the status field existed should load."""
        store.insert(OUTBOX_COLLECTION, {
            "id": "sync_old",
            "entityType": "course",
            "entityId": "c1",
            "action": "create",
            "data": "{}",
            "isSynced": True,
            "syncAttempts": 2,
            "lastSyncAttempt": None,
            "createdAt": "2024-01-01T00:00:00.000Z",
        })

        entry = OutboxEntry.from_record(store.find_one(OUTBOX_COLLECTION, {"id": "sync_old"}))

        assert entry.status == EntryStatus.SYNCED
        assert entry.last_error is None


class TestPurge:
    """Tests for the retention sweep."""

    def test_purges_only_old_synced_entries(self, store: LocalStore) -> None:
        outbox = Outbox(store, max_attempts=1)
        old = (datetime.now(UTC) - timedelta(days=40)).isoformat()

        old_synced = outbox.enqueue("lesson", "l1", SyncAction.CREATE, {"id": "l1"})
        outbox.mark_synced(old_synced.id)
        store.update(OUTBOX_COLLECTION, {"lastSyncAttempt": old}, {"id": old_synced.id})

        recent_synced = outbox.enqueue("lesson", "l2", SyncAction.CREATE, {"id": "l2"})
        outbox.mark_synced(recent_synced.id)

        old_abandoned = outbox.enqueue("lesson", "l3", SyncAction.CREATE, {"id": "l3"})
        outbox.record_failure(old_abandoned.id)
        store.update(OUTBOX_COLLECTION, {"lastSyncAttempt": old, "createdAt": old}, {"id": old_abandoned.id})

        old_pending = outbox.enqueue("lesson", "l4", SyncAction.CREATE, {"id": "l4"})
        store.update(OUTBOX_COLLECTION, {"createdAt": old}, {"id": old_pending.id})

        assert outbox.purge_synced(older_than_days=30) == 1
        assert outbox.get(old_synced.id) is None
        assert outbox.get(recent_synced.id) is not None
        assert outbox.get(old_abandoned.id) is not None
        assert outbox.get(old_pending.id) is not None
