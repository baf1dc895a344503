"""Durable local store for offline-first data.

This module provides:
- LocalStore: SQLite-backed CRUD over named collections of JSON records
- StoreError, ConstraintError, StoreUnavailableError: Store exceptions

Architecture:
    Each collection is a table with an autoincrement ``seq`` column that
    records insertion order, a unique ``id`` and the record serialized as
    JSON. The store never interprets record fields beyond ``id``; filtering
    and ordering happen on the decoded records.

    All operations are serialized by one re-entrant lock and run inside a
    transaction, so a reader never observes a partially written record.
    ``transaction()`` groups several operations (e.g. a domain write and
    its outbox entry) into one atomic unit.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]
Predicate = Mapping[str, Any] | Callable[[Record], bool]
OrderBy = str | Sequence[str]

MEMORY = ":memory:"

DEFAULT_COLLECTIONS: tuple[str, ...] = (
    # Learning
    "courses",
    "lessons",
    "lesson_progress",
    "quizzes",
    "quiz_attempts",
    "timetable",
    # Community
    "community_groups",
    "community_questions",
    "community_answers",
    "mentor_sessions",
    "moderation_reports",
    # Career tools
    "resumes",
    "user_skills",
    "interview_sessions",
    # Sync bookkeeping
    "sync_status",
    "sync_meta",
    "offline_content",
)

_COLLECTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(Exception):
    """Base exception for local store errors."""


class ConstraintError(StoreError):
    """A record violates a store constraint (e.g. duplicate id)."""


class StoreUnavailableError(StoreError):
    """The store cannot be used (closed, corrupt, disk full...)."""


def _matches(record: Record, where: Predicate | None) -> bool:
    """Check a record against a field mapping or a callable predicate."""
    if where is None:
        return True
    if callable(where):
        return bool(where(record))
    return all(record.get(key) == value for key, value in where.items())


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts before any value
    if value is None:
        return (0, 0)
    return (1, value)


def _parse_order(key: str) -> tuple[str, bool]:
    """Parse "field", "-field", "field ASC" or "field DESC"."""
    parts = key.split()
    if len(parts) == 2:
        return parts[0], parts[1].upper() == "DESC"
    if key.startswith("-"):
        return key[1:], True
    return key, False


def sort_records(records: list[Record], order_by: OrderBy | None) -> list[Record]:
    """Sort records in place by one or more fields.

    Sorting is stable, so records comparing equal keep insertion order.
    """
    if not order_by:
        return records
    keys = [order_by] if isinstance(order_by, str) else list(order_by)
    for key in reversed(keys):
        field, descending = _parse_order(key)
        records.sort(key=lambda r: _sort_key(r.get(field)), reverse=descending)
    return records


class LocalStore:
    """SQLite-based store of named record collections.

    Usage:
        store = LocalStore(data_dir / "edusync.db")
        store.open()

        store.insert("lessons", {"id": "lesson_1", "title": "Fractions"})
        store.update("lessons", {"title": "Decimals"}, {"id": "lesson_1"})
        lessons = store.find_many("lessons", order_by="title")

        with store.transaction():
            store.insert(...)
            store.insert(...)

        store.close()
    """

    def __init__(
        self,
        db_path: Path | str,
        collections: Sequence[str] = DEFAULT_COLLECTIONS,
    ) -> None:
        """Initialize the store (does not open it).

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
            collections: Collections created when the store is opened.
        """
        self._db_path = db_path if db_path == MEMORY else Path(db_path)
        self._initial_collections = tuple(collections)
        self._conn: sqlite3.Connection | None = None

        # Lock for thread-safe database access
        self._lock = threading.RLock()
        self._depth = 0
        self._known: set[str] = set()

    @property
    def is_open(self) -> bool:
        """Check if the store is open."""
        return self._conn is not None

    def open(self) -> LocalStore:
        """Open the database and create the default collections.

        Idempotent: opening an open store does nothing.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        with self._lock:
            if self._conn is not None:
                return self
            try:
                if isinstance(self._db_path, Path):
                    self._db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(
                    str(self._db_path),
                    check_same_thread=False,
                    isolation_level=None,  # Explicit BEGIN/COMMIT
                )
                self._conn.execute("PRAGMA journal_mode=WAL")
            except (sqlite3.Error, OSError) as e:
                self._conn = None
                raise StoreUnavailableError(f"Cannot open store at {self._db_path}: {e}") from e

            self._known.clear()
            try:
                with self.transaction():
                    for name in self._initial_collections:
                        self._ensure_collection(name)
            except StoreError:
                self._conn.close()
                self._conn = None
                raise
            logger.info("Local store opened at %s", self._db_path)
            return self

    def close(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            self._depth = 0
            self._known.clear()
            logger.info("Local store closed")

    def __enter__(self) -> LocalStore:
        """Context manager entry."""
        return self.open()

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Internals ===

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError("Store is not open")
        return self._conn

    @contextmanager
    def _translate_errors(self) -> Iterator[None]:
        """Map sqlite3 exceptions onto store exceptions."""
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise ConstraintError(str(e)) from e
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e

    def _ensure_collection(self, name: str) -> str:
        """Create the collection table if needed and return its quoted name."""
        if not _COLLECTION_NAME.match(name):
            raise ValueError(f"Invalid collection name: {name!r}")
        quoted = f'"{name}"'
        if name not in self._known:
            with self._translate_errors():
                self._require_conn().execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {quoted} (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        data TEXT NOT NULL
                    )
                    """
                )
            self._known.add(name)
        return quoted

    def _select(self, collection: str, where: Predicate | None) -> list[tuple[int, Record]]:
        """Return (seq, record) pairs matching the predicate, in insertion order."""
        table = self._ensure_collection(collection)
        conn = self._require_conn()
        with self._translate_errors():
            # Narrow lookups by id in SQL, the rest is checked on the record
            if isinstance(where, Mapping) and "id" in where:
                cursor = conn.execute(
                    f"SELECT seq, data FROM {table} WHERE id = ? ORDER BY seq",
                    (where["id"],),
                )
            else:
                cursor = conn.execute(f"SELECT seq, data FROM {table} ORDER BY seq")
            rows = cursor.fetchall()

        result = []
        for seq, data in rows:
            record = json.loads(data)
            if _matches(record, where):
                result.append((seq, record))
        return result

    @staticmethod
    def _dumps(record: Mapping[str, Any]) -> str:
        return json.dumps(record, default=str, separators=(",", ":"))

    # === Transactions ===

    @contextmanager
    def transaction(self) -> Iterator[LocalStore]:
        """Run the enclosed operations as one atomic transaction.

        Nested transactions join the outermost one; an exception escaping
        the outermost block rolls everything back.
        """
        with self._lock:
            conn = self._require_conn()
            outermost = self._depth == 0
            if outermost:
                with self._translate_errors():
                    conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost and self._conn is not None:
                    # Tables created in this transaction are gone too
                    self._known.clear()
                    with self._translate_errors():
                        conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                with self._translate_errors():
                    conn.execute("COMMIT")

    # === CRUD ===

    def insert(self, collection: str, record: Mapping[str, Any]) -> Record:
        """Insert a new record.

        Args:
            collection: Collection name.
            record: Record with a string ``id``.

        Returns:
            A copy of the stored record.

        Raises:
            ConstraintError: If a record with the same id exists.
            ValueError: If the record has no string id.
        """
        record_id = record.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("Record must have a non-empty string 'id'")

        with self.transaction():
            table = self._ensure_collection(collection)
            try:
                with self._translate_errors():
                    self._require_conn().execute(
                        f"INSERT INTO {table} (id, data) VALUES (?, ?)",
                        (record_id, self._dumps(record)),
                    )
            except ConstraintError as e:
                raise ConstraintError(
                    f"Record {record_id!r} already exists in {collection}"
                ) from e
        logger.debug("Inserted %s/%s", collection, record_id)
        return json.loads(self._dumps(record))

    def update(
        self,
        collection: str,
        fields: Mapping[str, Any],
        where: Predicate,
    ) -> int:
        """Merge fields into every matching record.

        Args:
            collection: Collection name.
            fields: Fields to set on each matching record.
            where: Field mapping or predicate selecting records.

        Returns:
            Number of records updated (0 is not an error).

        Raises:
            ValueError: If fields would change a record id.
        """
        with self.transaction():
            rows = self._select(collection, where)
            table = self._ensure_collection(collection)
            conn = self._require_conn()
            for seq, record in rows:
                if "id" in fields and fields["id"] != record["id"]:
                    raise ValueError("Record id cannot be changed")
                record.update(fields)
                with self._translate_errors():
                    conn.execute(
                        f"UPDATE {table} SET data = ? WHERE seq = ?",
                        (self._dumps(record), seq),
                    )
        if rows:
            logger.debug("Updated %d record(s) in %s", len(rows), collection)
        return len(rows)

    def delete(self, collection: str, where: Predicate) -> int:
        """Delete every matching record.

        Returns:
            Number of records deleted (0 is not an error).
        """
        with self.transaction():
            rows = self._select(collection, where)
            table = self._ensure_collection(collection)
            conn = self._require_conn()
            for seq, _ in rows:
                with self._translate_errors():
                    conn.execute(f"DELETE FROM {table} WHERE seq = ?", (seq,))
        if rows:
            logger.debug("Deleted %d record(s) from %s", len(rows), collection)
        return len(rows)

    def find_one(self, collection: str, where: Predicate) -> Record | None:
        """Return the first matching record in insertion order, or None."""
        with self.transaction():
            rows = self._select(collection, where)
        return rows[0][1] if rows else None

    def find_many(
        self,
        collection: str,
        where: Predicate | None = None,
        order_by: OrderBy | None = None,
    ) -> list[Record]:
        """Return matching records.

        Args:
            collection: Collection name.
            where: Optional field mapping or predicate; None returns all records.
            order_by: Field name, "-field" for descending, or a sequence of
                those. Default is insertion order.
        """
        with self.transaction():
            rows = self._select(collection, where)
        return sort_records([record for _, record in rows], order_by)

    def count(self, collection: str, where: Predicate | None = None) -> int:
        """Count matching records."""
        if where is None:
            with self.transaction():
                table = self._ensure_collection(collection)
                with self._translate_errors():
                    row = self._require_conn().execute(
                        f"SELECT COUNT(*) FROM {table}"
                    ).fetchone()
            return int(row[0])
        return len(self.find_many(collection, where))

    def collections(self) -> list[str]:
        """List existing collection names."""
        with self._lock:
            with self._translate_errors():
                rows = self._require_conn().execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' "
                    "AND name NOT LIKE 'sqlite_%' ORDER BY name"
                ).fetchall()
        return [row[0] for row in rows]
