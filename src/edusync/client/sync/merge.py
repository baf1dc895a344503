"""Merge policy for records pulled from the backend.

Last-writer-wins by ``updatedAt``: the local copy is kept only when it is
strictly newer than the remote one. Equal timestamps and records without a
parseable ``updatedAt`` resolve to the remote copy, which is the
authoritative source for first-run downloads.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from edusync.core.types import parse_timestamp


class MergeDecision(str, Enum):
    """Outcome of comparing a local and a remote record."""

    INSERT = "insert"  # No local copy
    TAKE_REMOTE = "take_remote"
    KEEP_LOCAL = "keep_local"


def resolve_conflict(
    local: Mapping[str, Any] | None, remote: Mapping[str, Any]
) -> MergeDecision:
    """Decide which copy of a record wins.

    Args:
        local: The record currently in the local store, if any.
        remote: The record received from the backend.

    Returns:
        The merge decision.
    """
    if local is None:
        return MergeDecision.INSERT

    local_ts = parse_timestamp(local.get("updatedAt"))
    remote_ts = parse_timestamp(remote.get("updatedAt"))
    if local_ts is not None and remote_ts is not None and local_ts > remote_ts:
        return MergeDecision.KEEP_LOCAL
    return MergeDecision.TAKE_REMOTE
