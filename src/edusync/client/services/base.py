"""Base class for domain services writing through the outbox.

Every write changes the local store and appends exactly one outbox entry
in the same transaction: either both are persisted or neither is.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from edusync.client.payloads import collection_for, parse_payload
from edusync.core.types import SyncAction, utc_now_iso

if TYPE_CHECKING:
    from edusync.client.outbox import Outbox
    from edusync.client.store import LocalStore, OrderBy, Predicate, Record

logger = logging.getLogger(__name__)


class EntityNotFoundError(LookupError):
    """The record targeted by an update does not exist."""


def new_id(prefix: str) -> str:
    """Generate a record id such as ``question_3f2a9c...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class EntityService:
    """Shared read/write helpers for services over synchronized collections."""

    def __init__(self, store: LocalStore, outbox: Outbox, user_id: str = "default_user") -> None:
        self._store = store
        self._outbox = outbox
        self._user_id = user_id

    @property
    def user_id(self) -> str:
        """Identifier of the local user."""
        return self._user_id

    # === Reads ===

    def _get(self, entity_type: str, record_id: str) -> Record | None:
        return self._store.find_one(collection_for(entity_type), {"id": record_id})

    def _list(
        self,
        entity_type: str,
        where: Predicate | None = None,
        order_by: OrderBy | None = None,
    ) -> list[Record]:
        return self._store.find_many(collection_for(entity_type), where, order_by)

    # === Writes ===

    def _save(
        self,
        entity_type: str,
        record: Mapping[str, Any],
        match: Mapping[str, Any] | None = None,
    ) -> Record:
        """Insert or update a record and enqueue the mutation.

        Args:
            entity_type: Tag of the entity.
            record: Record to persist. Must carry an ``id``.
            match: Fields identifying an existing record (default: the id).
                When a record matches under another id, that id is kept.

        Returns:
            The stored record.

        Raises:
            PayloadError: If the record, alone or merged into the stored one,
                does not validate for its type. Nothing is written.
            StoreError: If the store fails. Nothing is written.
        """
        parse_payload(entity_type, record)
        collection = collection_for(entity_type)
        data = dict(record)
        now = utc_now_iso()

        with self._store.transaction():
            existing = self._store.find_one(collection, match or {"id": data["id"]})
            data["updatedAt"] = now
            if existing is None:
                data.setdefault("createdAt", now)
                stored = self._store.insert(collection, data)
                action = SyncAction.CREATE
            else:
                data["id"] = existing["id"]
                data["createdAt"] = existing.get("createdAt", data.get("createdAt", now))
                stored = {**existing, **data}
                parse_payload(entity_type, stored)
                self._store.update(collection, data, {"id": existing["id"]})
                action = SyncAction.UPDATE
            self._outbox.enqueue(entity_type, stored["id"], action, stored)

        logger.debug("Saved %s %s (%s)", entity_type, stored["id"], action.value)
        return stored

    def _update(self, entity_type: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Merge fields into an existing record and enqueue the update.

        Raises:
            EntityNotFoundError: If the record does not exist.
            PayloadError: If the updated record does not validate.
        """
        collection = collection_for(entity_type)
        with self._store.transaction():
            existing = self._store.find_one(collection, {"id": record_id})
            if existing is None:
                raise EntityNotFoundError(f"{entity_type} {record_id!r} not found")
            changes = {**fields, "updatedAt": utc_now_iso()}
            stored = {**existing, **changes}
            parse_payload(entity_type, stored)
            self._store.update(collection, changes, {"id": record_id})
            self._outbox.enqueue(entity_type, record_id, SyncAction.UPDATE, stored)
        return stored

    def _remove(self, entity_type: str, record_id: str) -> bool:
        """Delete a record and enqueue the deletion.

        Returns:
            True if the record existed.
        """
        with self._store.transaction():
            deleted = self._store.delete(collection_for(entity_type), {"id": record_id})
            if deleted:
                self._outbox.enqueue(
                    entity_type, record_id, SyncAction.DELETE, {"id": record_id}
                )
        if deleted:
            logger.debug("Deleted %s %s", entity_type, record_id)
        return bool(deleted)
