"""Shared types for edusync.

This module defines enums and timestamp helpers used across the store,
the outbox, the connectivity monitor and the sync driver.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum


class SyncAction(str, Enum):
    """Kind of mutation recorded in the outbox."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntryStatus(str, Enum):
    """Lifecycle status of an outbox entry.

    PENDING entries are drained, SYNCED entries are never re-sent and
    ABANDONED entries exceeded their retry budget.
    """

    PENDING = "pending"
    SYNCED = "synced"
    ABANDONED = "abandoned"


class ConnectivityState(str, Enum):
    """Network reachability as seen by the connectivity monitor."""

    ONLINE = "online"
    OFFLINE = "offline"


class SyncState(str, Enum):
    """Aggregate state of the sync subsystem, for status displays."""

    IDLE = "idle"
    SYNCING = "syncing"
    OFFLINE = "offline"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string.

    Microsecond precision keeps lexical order equal to chronological
    order for timestamps produced by this function.
    """
    return utc_now().isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None for empty or invalid input.

    Naive timestamps are assumed to be UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
